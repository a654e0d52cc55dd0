"""请求准入：限流预算 (rate_budget) 与串行准入队列 (admission_queue)。"""

from assist_core.scheduling.admission_queue import AdmissionQueue
from assist_core.scheduling.rate_budget import RateBudget

__all__ = ["AdmissionQueue", "RateBudget"]
