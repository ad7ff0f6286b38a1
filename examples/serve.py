"""Job server example.

Registers assessment and chat handlers on an orchestrator and serves them
as event streams. Chat requires a linked account; until it is linked the
endpoint answers with a redirect instruction instead of a stream.

Run with::

    uvicorn examples.serve:app --port 8080
"""

import asyncio
import logging
import time
import uuid

import jobstream

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

settings = jobstream.ServerSettings()
orchestrator = jobstream.JobOrchestrator(job_timeout=settings.job_timeout_s)

linked_accounts: set[str] = set()


@orchestrator.middleware
async def timing_middleware(ctx: jobstream.JobContext, next):
    """Measure and log job execution time."""
    start = time.monotonic()
    try:
        return await next()
    finally:
        logging.info("Job %s (%s) took %.3fs", ctx.job_id, ctx.job_type, time.monotonic() - start)


async def require_linked_account(payload):
    user = payload.get("userId", "anonymous")
    if user in linked_accounts:
        return None
    return f"https://github.com/apps/assessments/installations/new?state={user}"


@orchestrator.register(jobstream.ASSESSMENT_JOB, event=jobstream.EventType.ASSESSMENT_CREATED)
async def create_assessment(ctx: jobstream.JobContext):
    ctx.report_progress("Generating assessment")
    await asyncio.sleep(1.0)
    ctx.report_progress("Provisioning repository")
    await asyncio.sleep(1.0)
    return {"assessmentId": str(uuid.uuid4()), "name": ctx.payload.get("name", "")}


@orchestrator.register(
    jobstream.CHAT_JOB,
    event=jobstream.EventType.CHAT_COMPLETION,
    prerequisite=require_linked_account,
)
async def chat(ctx: jobstream.JobContext):
    reply = jobstream.ChatMessage(
        id=str(uuid.uuid4()),
        text=f"You said: {ctx.payload.get('message', '')}",
        model="echo",
    )
    ctx.emit_message(reply)
    return {"messages": [reply.to_dict()]}


app = jobstream.create_app(orchestrator, settings)
