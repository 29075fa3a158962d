"""Job broker implementations.

``RedisJobQueue`` keeps upload jobs in Redis lists with a lease per
in-flight job, giving at-least-once delivery to the ingestion worker.
"""

from pdfchat.providers.queue.redis_queue import RedisJobQueue

__all__ = ["RedisJobQueue"]
