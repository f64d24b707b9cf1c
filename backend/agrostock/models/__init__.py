from .users import User, Supplier
from .ledger import Balance, CashRegisterHead, CashRegisterEntry, Transfer, BalanceRequest
from .stock import Owner, StockEntry
from .documents import ReceptionDocument, Settlement, SettlementPayment, DeliveryNote
from .advances import AdvancePayment, AdvanceAllocation
from .deliveries import Delivery

__all__ = [
    'User', 'Supplier',
    'Balance', 'CashRegisterHead', 'CashRegisterEntry', 'Transfer', 'BalanceRequest',
    'Owner', 'StockEntry',
    'ReceptionDocument', 'Settlement', 'SettlementPayment', 'DeliveryNote',
    'AdvancePayment', 'AdvanceAllocation',
    'Delivery',
]
