"""
# utils/health_check.py

Module Contract
- Purpose: Lightweight health report for the pipeline. Never calls the model.
- Inputs:
  - get_health_status(container=None) → Dict[str, Any]
- Outputs:
  - {"status": "healthy" | "degraded", "timestamp", "version", "checks": {...}}
- Key checks:
  - Container initialized
  - Model client configured (presence only; the key is never included)
  - Resource index built
  - Analytics failed batches
  - Pending moderator alerts
  - Audit emergency log directory writable
- Error handling:
  - Any check that raises is reported as {"error": ...} and marks the status degraded.
"""

import os
from datetime import datetime
from typing import Any, Dict

from utils.logging_utils import get_logger

logger = get_logger("health_check")


def get_health_status(container=None) -> Dict[str, Any]:
    """
    Check basic health of the pipeline.

    Args:
        container: Optional DependencyContainer for service-level checks

    Returns:
        Dict with status, timestamp, version, and check results
    """
    checks = {}
    status = "healthy"

    # 1. Container
    initialized = bool(container is not None and getattr(container, "initialized", False))
    checks["container"] = {"initialized": initialized}
    if not initialized:
        status = "degraded"

    if initialized:
        # 2. Model client (don't reveal the key)
        try:
            model = container.get_model_manager()
            available = bool(getattr(model, "is_available", True))
            checks["model_client"] = {"configured": available}
            if not available:
                logger.warning("Health check: no model client configured; running on local strategies")
                status = "degraded"
        except Exception as e:
            checks["model_client"] = {"error": str(e)}
            status = "degraded"

        # 3. Resource index
        try:
            matcher = container.get_resource_matcher()
            checks["resource_index"] = {"indexed": matcher.indexed, "resources": len(matcher.resources)}
            if not matcher.indexed:
                status = "degraded"
        except Exception as e:
            checks["resource_index"] = {"error": str(e)}
            status = "degraded"

        # 4. Analytics
        try:
            stats = container.get_analytics().get_stats()
            checks["analytics"] = {"failed_batches": stats["failed_batches"], "queue_size": stats["queue_size"]}
            if stats["failed_batches"]:
                logger.warning(f"Health check: {stats['failed_batches']} failed analytics batches")
                status = "degraded"
        except Exception as e:
            checks["analytics"] = {"error": str(e)}
            status = "degraded"

        # 5. Moderator alerts waiting for a human
        try:
            pending = container.get_escalation_manager().get_moderator_alerts("pending")
            checks["moderator_alerts"] = {"pending": len(pending)}
        except Exception as e:
            checks["moderator_alerts"] = {"error": str(e)}
            status = "degraded"

        # 6. Emergency audit log location
        try:
            log_dir = container.get_audit_logger().emergency_log_path.parent.resolve()
            exists = log_dir.exists()
            checks["emergency_log"] = {
                "path": str(log_dir),
                "exists": exists,
                "writable": exists and os.access(log_dir, os.W_OK),
            }
        except Exception as e:
            checks["emergency_log"] = {"error": str(e)}
            status = "degraded"

    try:
        from config.app_config import VERSION
        version = VERSION
    except Exception:
        version = "unknown"

    return {
        "status": status,
        "timestamp": datetime.now().isoformat(),
        "version": version,
        "checks": checks,
    }
