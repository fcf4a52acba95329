"""
Verification backend integrations.

Seams between the engine and the remote verification service:
  - VerificationStatusProvider   (per-user status + capabilities)
  - BulkTransitionBackend        (approve / reject / activate / suspend / message, export rows)

Usage:
    from integrations.verification_api import VerificationApiClient

    client = VerificationApiClient.from_settings()
    status = await client.fetch(user_id)
    result = await client.transition(OperationType.APPROVE, ["v-1", "v-2"])
"""
