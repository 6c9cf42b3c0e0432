# dependencies/services.py

from fastapi import Depends

from core.storage import Storage, get_storage
from services.lifecycle import AccountLifecycle, build_lifecycle


# ============================================================
# Service wiring (overridden in tests)
# ============================================================
def get_storage_backend() -> Storage:
    return get_storage()


def get_lifecycle(storage: Storage = Depends(get_storage_backend)) -> AccountLifecycle:
    return build_lifecycle(storage)
