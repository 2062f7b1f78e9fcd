"""First-boot desktop provisioning for the bootc image (Python-first, reconciling).

Core design goals:
- Wait for readiness instead of failing early in the boot sequence
- Idempotent operations, safe to re-run
- Continue past individual failures and record everything
- One active instance per reconciler (PID lock)
- Centralized logging
"""

__all__ = []
