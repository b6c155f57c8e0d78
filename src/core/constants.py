from enum import Enum
from decimal import Decimal


class ScheduleType(str, Enum):
    ONE_TIME = 'one_time'
    DAILY = 'daily'
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'


class ScheduleStatus(str, Enum):
    ACTIVE = 'active'
    PAUSED = 'paused'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class PurchaseType(str, Enum):
    AIRTIME = 'airtime'
    DATA = 'data'


class TransactionStatus(str, Enum):
    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'
    REFUNDED = 'refunded'


class TransactionType(str, Enum):
    DEPOSIT = 'deposit'
    WITHDRAWAL = 'withdrawal'
    AIRTIME_PURCHASE = 'airtime_purchase'
    DATA_PURCHASE = 'data_purchase'
    AUTO_TOPUP = 'auto_topup'


class ExecutionStatus(str, Enum):
    SUCCESS = 'success'
    FAILED = 'failed'
    SKIPPED = 'skipped'


class SpendingCategory(str, Enum):
    AIRTIME = 'AIRTIME'
    DATA = 'DATA'


class NotificationType(str, Enum):
    SUCCESS = 'success'
    ERROR = 'error'
    WARNING = 'warning'
    INFO = 'info'


class NotificationCategory(str, Enum):
    TRANSACTION = 'transaction'
    BUDGET = 'budget'
    SYSTEM = 'system'


class NetworkProvider(str, Enum):
    MTN = 'MTN'
    AIRTEL = 'Airtel'
    GLO = 'Glo'
    NINE_MOBILE = '9mobile'


TERMINAL_SCHEDULE_STATUSES = (ScheduleStatus.COMPLETED, ScheduleStatus.CANCELLED)

BUDGET_ALERT_THRESHOLDS = (50, 75, 90, 100)

# 4-digit prefixes of 11-digit local numbers
NETWORK_PREFIXES = {
    NetworkProvider.MTN: (
        '0703', '0706', '0803', '0806', '0810', '0813',
        '0814', '0816', '0903', '0906', '0913', '0916',
    ),
    NetworkProvider.AIRTEL: (
        '0701', '0708', '0802', '0808', '0812',
        '0901', '0902', '0904', '0907', '0912',
    ),
    NetworkProvider.GLO: ('0705', '0805', '0807', '0811', '0815', '0905', '0915'),
    NetworkProvider.NINE_MOBILE: ('0809', '0817', '0818', '0908', '0909'),
}

# Used when the provider plan listing is unavailable (NGN, before margin)
FALLBACK_DATA_PLANS = (
    {"plan_id": "1gb", "name": "1GB", "validity": "30 days", "cost": Decimal("300")},
    {"plan_id": "2gb", "name": "2GB", "validity": "30 days", "cost": Decimal("600")},
    {"plan_id": "3gb", "name": "3GB", "validity": "30 days", "cost": Decimal("900")},
    {"plan_id": "5gb", "name": "5GB", "validity": "30 days", "cost": Decimal("1500")},
    {"plan_id": "10gb", "name": "10GB", "validity": "30 days", "cost": Decimal("3000")},
)
