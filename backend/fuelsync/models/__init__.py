from .stations import Station, Nozzle, FuelPrice
from .users import User
from .readings import NozzleReading
from .transactions import DailyTransaction, CreditAllocation
from .credit import Creditor, CreditLedgerEntry
from .shifts import Shift
from .handovers import CashHandover
from .settlements import DailySettlement
from .audit import AuditEvent

__all__ = [
    'Station', 'Nozzle', 'FuelPrice',
    'User',
    'NozzleReading',
    'DailyTransaction', 'CreditAllocation',
    'Creditor', 'CreditLedgerEntry',
    'Shift',
    'CashHandover',
    'DailySettlement',
    'AuditEvent',
]
