import enum


class PaymentRail(str, enum.Enum):
    INSTANT_GATEWAY = "instant_gateway"
    BANK_TRANSFER = "bank_transfer"


class VerificationMethod(str, enum.Enum):
    MANUAL_ADMIN = "manual_admin"
    AUTO_IMMEDIATE = "auto_immediate"
    AUTO_DELAYED = "auto_delayed"
    PENDING_MANUAL = "pending_manual"
