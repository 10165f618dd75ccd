# Import models so that SQLAlchemy metadata includes both order partitions
from .order import Order  # noqa: F401
from .bank_transfer_order import BankTransferOrder  # noqa: F401
