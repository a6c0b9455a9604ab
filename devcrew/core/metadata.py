"""Metadata keys carrying collaboration bookkeeping between hops."""

SESSION_ID = "collaboration_session_id"
COLLABORATION_TYPE = "collaboration_type"
PARTICIPANTS = "participants"
PREVIOUS_AGENT_ID = "previous_agent_id"
NEXT_AGENT_ID = "next_agent_id"
INITIATOR_ID = "initiator_agent_id"
COORDINATOR_AGENT_ID = "coordinator_agent_id"
IS_COORDINATOR = "is_coordinator"
IS_INTEGRATION = "is_integration"
TASK = "task"
WORKER_RESULTS = "worker_results"
FAILURES = "failures"
