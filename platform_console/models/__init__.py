from platform_console.models.tenant import Company, Tenant
from platform_console.models.user import User
from platform_console.models.admin_user import AdminUser
from platform_console.models.order import Order
from platform_console.models.campaign import Campaign
from platform_console.models.task import Task
from platform_console.models.audit_log import AuditLog
from platform_console.models.idempotency_record import IdempotencyRecord
from platform_console.models.demo_booking import DemoBooking
