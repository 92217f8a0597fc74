from courseboard.core.concurrency.keyed_lock import KeyedLock

__all__ = ["KeyedLock"]
