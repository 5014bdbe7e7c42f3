# backend/tanker/services/base.py
"""
Base Service Pattern for the tanker platform

Provides common functionality for all service classes including:
- Access to the injected persistence adapter
- Logging
- Performance monitoring
"""

import asyncio
from functools import wraps
import logging
import time
from typing import TYPE_CHECKING, Any, Callable, Dict, TypeVar, cast

if TYPE_CHECKING:
    from ..repositories.base_repository import PersistenceAdapter

logger = logging.getLogger(__name__)

SLOW_OPERATION_SECONDS = 1.0


class BaseService:
    """
    Base class for all service layer components.

    Services receive their adapter explicitly; there is no module-level
    instance, so tests construct isolated services over isolated stores.
    """

    # Class-level metrics storage
    _class_metrics: Dict[str, Dict[str, Dict[str, float]]] = {}

    def __init__(self, adapter: "PersistenceAdapter"):
        """
        Initialize base service.

        Args:
            adapter: Persistence adapter all storage calls go through
        """
        self.adapter = adapter
        self.logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def measure_operation(operation_name: str) -> Callable:
        """
        Decorator to measure operation performance.

        Usage:
            @BaseService.measure_operation("create_booking")
            async def create_booking(self, data):
                ...

        Args:
            operation_name: Name of the operation for metrics

        Returns:
            Decorator function
        """

        F = TypeVar("F", bound=Callable[..., Any])

        def decorator(func: F) -> F:
            func._operation_name = operation_name
            func._is_measured = True

            if not asyncio.iscoroutinefunction(func):

                @wraps(func)
                def wrapper(self, *args, **kwargs):
                    start_time = time.time()
                    success = False
                    try:
                        result = func(self, *args, **kwargs)
                        success = True
                        return result
                    finally:
                        self._after_operation(operation_name, time.time() - start_time, success)

                return cast(F, wrapper)

            @wraps(func)
            async def async_wrapper(self, *args, **kwargs):
                start_time = time.time()
                success = False
                try:
                    result = await func(self, *args, **kwargs)
                    success = True
                    return result
                finally:
                    self._after_operation(operation_name, time.time() - start_time, success)

            return cast(F, async_wrapper)

        return decorator

    def _after_operation(self, operation: str, elapsed: float, success: bool) -> None:
        self._record_metric(operation, elapsed, success)
        # Only log if it's actually slow
        if elapsed > SLOW_OPERATION_SECONDS:
            self.logger.warning(f"Slow operation detected: {operation} took {elapsed:.2f}s")

    def log_operation(self, operation: str, **context):
        """
        Log an operation with context.

        Args:
            operation: Operation name
            **context: Additional context to log
        """
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})

    def _record_metric(self, operation: str, elapsed: float, success: bool) -> None:
        class_name = self.__class__.__name__
        metrics = BaseService._class_metrics.setdefault(class_name, {})
        metric_data = metrics.setdefault(
            operation,
            {
                "count": 0,
                "total_time": 0.0,
                "success_count": 0,
                "failure_count": 0,
                "min_time": float("inf"),
                "max_time": 0.0,
            },
        )
        metric_data["count"] += 1
        metric_data["total_time"] += elapsed
        metric_data["min_time"] = min(metric_data["min_time"], elapsed)
        metric_data["max_time"] = max(metric_data["max_time"], elapsed)
        if success:
            metric_data["success_count"] += 1
        else:
            metric_data["failure_count"] += 1

    def get_metrics(self) -> Dict[str, Any]:
        """
        Get performance metrics for this service.

        Returns:
            Dictionary with metrics for each measured operation
        """
        result = {}
        for operation, data in BaseService._class_metrics.get(self.__class__.__name__, {}).items():
            count = data["count"]
            if count == 0:
                continue
            result[operation] = {
                "count": count,
                "avg_time": data["total_time"] / count,
                "min_time": data["min_time"],
                "max_time": data["max_time"],
                "success_rate": data["success_count"] / count,
            }
        return result
