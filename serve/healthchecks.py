"""Health check utilities for serving."""
from typing import Dict, Tuple


def check_offers_configured(bandit_manager) -> Tuple[bool, str]:
    """
    Check that an offer set is loaded.

    Args:
        bandit_manager: TenantBanditManager instance

    Returns:
        (is_healthy, message)
    """
    if bandit_manager is None or not bandit_manager.arms:
        return False, "No offers configured"

    return True, f"{len(bandit_manager.arms)} offers configured"


def check_state_store(bandit_manager) -> Tuple[bool, str]:
    """
    Check that the bandit state store is usable.

    Returns:
        (is_healthy, message)
    """
    if bandit_manager is None:
        return False, "Bandit manager not initialized"

    store = bandit_manager.store
    try:
        if not store.healthy():
            return False, f"{type(store).__name__} not writable"
    except OSError as e:
        return False, f"State store check failed: {str(e)}"

    return True, f"{type(store).__name__} ready"


def run_all_health_checks(bandit_manager) -> Dict[str, Dict]:
    """
    Run all health checks.

    Args:
        bandit_manager: TenantBanditManager instance

    Returns:
        Dict with check results
    """
    checks = {
        "offers": check_offers_configured(bandit_manager),
        "state_store": check_state_store(bandit_manager),
    }

    results = {}
    overall_healthy = True

    for check_name, (is_healthy, message) in checks.items():
        results[check_name] = {
            "healthy": is_healthy,
            "message": message,
        }
        if not is_healthy:
            overall_healthy = False

    results["overall"] = {
        "healthy": overall_healthy,
        "message": "All checks passed" if overall_healthy else "Some checks failed",
    }

    return results
