"""Naming convention between internal pass ids and Google Wallet object ids.

Google object ids may not contain ``-``, so the UUID's dashes become
underscores. The full id is ``{issuer_id}.{suffix}``.
"""

from uuid import UUID


def to_object_suffix(pass_id: UUID | str) -> str:
    return str(pass_id).replace("-", "_")


def to_object_id(issuer_id: str, pass_id: UUID | str) -> str:
    return f"{issuer_id}.{to_object_suffix(pass_id)}"


def to_class_id(issuer_id: str, campaign_id: UUID | str) -> str:
    return f"{issuer_id}.campaign_{str(campaign_id).replace('-', '_')}"


def pass_id_from_object_id(object_id: str) -> str:
    """Recover the internal pass id from a (possibly issuer-prefixed) object id."""
    return object_id.rsplit(".", 1)[-1].replace("_", "-")
