from gc_estimator.services.stores.base import RecordStore
from gc_estimator.services.stores.local import LocalStore
from gc_estimator.services.stores.remote import RemoteStore

__all__ = ["RecordStore", "LocalStore", "RemoteStore"]
