"""
trialflow_batch -- Periodic sweeps over test sessions.

Runs registered sweep tasks (today: expiry of missed purchase deadlines)
one item per transaction, on demand or from an in-process interval
scheduler.

Architecture:
    trialflow_batch/ is a top-level package.  Nothing in trialflow_kernel/
    or trialflow_services/ imports from trialflow_batch.

Invariants:
    - One transaction per item: a failing item never blocks the others.
    - Clock injection: "today" comes from the injected Clock.
    - Re-running a sweep is harmless; items are re-checked under lock.
    - Graceful shutdown: stop() lets the current tick finish.
"""
