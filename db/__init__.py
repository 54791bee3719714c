from db.models import AuditAction, AuditLog, Base, Billing, BillingStatus

__all__ = ["AuditAction", "AuditLog", "Base", "Billing", "BillingStatus"]
