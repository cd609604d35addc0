"""
Decision log integrity verification.
Detects tampering via hash chain validation.
"""

from typing import List, Optional

from ..config import AUDIT_HASH_CHAIN_INITIAL
from ..errors import AuditChainBrokenError, AuditIntegrityError
from ..utils.canonical_json import canonicalize_bytes
from ..utils.hashing import chain_hashes
from .log_schema import DecisionEntry, entry_payload
from .recorder import DecisionRecorder


class IntegrityVerifier:
    """
    Verifies decision log integrity via hash chain validation.
    """

    def __init__(self, recorder: DecisionRecorder):
        """
        Initialize integrity verifier.

        Args:
            recorder: DecisionRecorder instance
        """
        self.recorder = recorder

    def verify_entry(self, entry: DecisionEntry, previous_hash: str) -> bool:
        """
        Verify a single entry against its predecessor's hash.

        Args:
            entry: Entry to verify
            previous_hash: Expected previous hash

        Returns:
            True if entry is valid

        Raises:
            AuditChainBrokenError: If the entry does not link to its predecessor
            AuditIntegrityError: If the entry's content was altered
        """
        if entry.previous_hash != previous_hash:
            raise AuditChainBrokenError(
                f"Entry {entry.entry_id}: previous_hash mismatch. "
                f"Expected {previous_hash}, got {entry.previous_hash}"
            )

        expected_hash = chain_hashes(previous_hash, canonicalize_bytes(entry_payload(entry)))

        if entry.entry_hash != expected_hash:
            raise AuditIntegrityError(
                f"Entry {entry.entry_id}: entry_hash mismatch. "
                f"Expected {expected_hash}, got {entry.entry_hash}"
            )

        return True

    def verify_chain(self, entries: Optional[List[DecisionEntry]] = None) -> bool:
        """
        Verify the entire chain.

        Args:
            entries: Optional list of entries to verify (defaults to all entries)

        Returns:
            True if entire chain is valid (an empty chain is valid)

        Raises:
            AuditChainBrokenError: If chain is broken
            AuditIntegrityError: If any entry is invalid
        """
        if entries is None:
            entries = self.recorder.get_all_entries()

        previous_hash = AUDIT_HASH_CHAIN_INITIAL
        for entry in entries:
            self.verify_entry(entry, previous_hash)
            previous_hash = entry.entry_hash

        return True

    def detect_tampering(self) -> List[int]:
        """
        Scan for tampered entries.

        Returns:
            List of entry IDs that failed verification
        """
        tampered = []
        previous_hash = AUDIT_HASH_CHAIN_INITIAL

        for entry in self.recorder.get_all_entries():
            try:
                self.verify_entry(entry, previous_hash)
            except AuditIntegrityError:
                tampered.append(entry.entry_id)
            # Keep walking from the stored hash so one bad entry is reported once
            previous_hash = entry.entry_hash

        return tampered

    def get_chain_summary(self) -> dict:
        """
        Get summary of chain status.

        Returns:
            Dictionary with chain statistics
        """
        entries = self.recorder.get_all_entries()

        summary = {
            'total_entries': len(entries),
            'is_valid': True,
            'tampered_entries': [],
            'last_entry_id': entries[-1].entry_id if entries else None,
            'last_hash': entries[-1].entry_hash if entries else AUDIT_HASH_CHAIN_INITIAL,
        }

        try:
            self.verify_chain(entries)
        except AuditIntegrityError:
            summary['is_valid'] = False
            summary['tampered_entries'] = self.detect_tampering()

        return summary
