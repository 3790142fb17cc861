from .update_queue import UpdateQueue

__all__ = ["UpdateQueue"]
