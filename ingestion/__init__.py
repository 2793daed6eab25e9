"""
Job execution components: endpoints, transformers, orchestration and scheduling.

Modules:
    runner: Orchestrator driving one job's Extract → Transform → Load sequence
    scheduler: APScheduler cron / interval triggers for recurring jobs
    repository: Job definition storage collaborator
    engine: Service composition and lifecycle (start / shutdown)

Subpackages:
    endpoints: Relational source and HTTP sink endpoints
    transformers: Normalizer, content enricher, JSON translator and validator

Architecture:
    Scheduler or manual trigger → Control Bus registers the execution →
    ETLRunner extracts from the source endpoint → Pipeline transforms the
    message → ETLRunner delivers to the sink endpoint through the retry
    handler, falling back to the dead letter channel → ExecutionRecord.

Usage:
    from ingestion.engine import EtlEngine
    from ingestion.repository import InMemoryJobRepository

Example:
    engine = EtlEngine(settings, InMemoryJobRepository([job]))
    await engine.start()

    record = await engine.run_job(job.id)
    print(engine.control_bus.get_status(job.id))

    await engine.shutdown()

Error Handling:
    Endpoints and transformers raise typed exceptions from core.exceptions;
    ETLRunner turns every one of them into a terminal ExecutionRecord.
"""

__all__ = [
    "ETLRunner",
    "EtlEngine",
    "JobScheduler",
    "JobRepository",
    "InMemoryJobRepository",
]
