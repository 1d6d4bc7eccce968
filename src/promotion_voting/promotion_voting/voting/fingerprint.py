from __future__ import annotations

import hashlib
import hmac


class VoterFingerprinter:
    """One-way keyed hash binding a voter to a campaign.

    Same voter, same campaign -> same fingerprint; nothing in the ledger can
    turn it back into an identity without the server salt.
    """

    def __init__(self, salt: str):
        if not salt:
            raise ValueError("VOTER_FINGERPRINT_SALT must be configured")
        self._key = salt.encode("utf-8")

    def fingerprint(self, voter_identity: int | str, campaign_id: int) -> str:
        message = f"{voter_identity}|{int(campaign_id)}".encode("utf-8")
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()
