from loyalty_ledger.services.audit import AuditService
from loyalty_ledger.services.delegation import DelegatedTransactionService
from loyalty_ledger.services.family_circle import FamilyCircleServiceImpl
from loyalty_ledger.services.interfaces import FamilyCircleService, LedgerService
from loyalty_ledger.services.ledger import LedgerServiceImpl

__all__ = [
    "AuditService",
    "DelegatedTransactionService",
    "FamilyCircleService",
    "FamilyCircleServiceImpl",
    "LedgerService",
    "LedgerServiceImpl",
]
