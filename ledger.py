"""Role/kind classification shared by the balance and analysis paths.

A transaction always links a payer and a recipient. Seen from one of the two
parties (the *viewer*), it moves the viewer's net position toward the other
party and, for analysis, lands in at most one activity bucket.
"""

from dataclasses import dataclass
from typing import Optional

from models import Bucket, Transaction


@dataclass(frozen=True)
class Classification:
    counterparty_id: str
    signed_cents: int
    bucket: Optional[Bucket]


def payer_sign(is_payment: bool) -> int:
    """Sign of the payer's position change: loans raise it, settlements lower it."""
    return -1 if is_payment else 1


def bucket_for(is_payment: bool, viewer_is_payer: bool) -> Optional[Bucket]:
    if is_payment:
        return Bucket.lending if viewer_is_payer else Bucket.borrowing
    if viewer_is_payer:
        # Loans the viewer handed out are not charted in any daily series.
        return None
    return Bucket.expenses


def classify(txn: Transaction, viewer_id: str) -> Classification:
    if viewer_id == txn.payer_id:
        viewer_is_payer = True
    elif viewer_id == txn.recipient_id:
        viewer_is_payer = False
    else:
        raise ValueError(f"User {viewer_id} is not a party to transaction {txn.id}")

    signed = payer_sign(txn.is_payment) * txn.amount_cents
    if not viewer_is_payer:
        signed = -signed
    return Classification(
        counterparty_id=txn.other_party(viewer_id),
        signed_cents=signed,
        bucket=bucket_for(txn.is_payment, viewer_is_payer),
    )
