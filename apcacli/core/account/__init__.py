from apcacli.core.account.models import Account, AccountStatus
from apcacli.core.account.ports import AccountPort

__all__ = [
    "Account",
    "AccountStatus",
    "AccountPort",
]
