from speechsession.infrastructure.storage import LocalObjectStore, ObjectStore

__all__ = ["LocalObjectStore", "ObjectStore"]
