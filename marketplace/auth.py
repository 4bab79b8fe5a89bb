from dataclasses import dataclass
from functools import wraps
from typing import Dict, Optional

import bcrypt
from bson import ObjectId
from flask import current_app
from flask_jwt_extended import (
    create_access_token,
    get_jwt,
    get_jwt_identity,
    verify_jwt_in_request,
)
from werkzeug.exceptions import Unauthorized

from marketplace.errors import respond
from marketplace.extensions import get_db
from marketplace.serializers import normalize_object_id_value

ORGANIZER_ROLE = "community-organizer"
VENDOR_ROLE = "vendor"
ADMIN_ROLE = "admin"

# Roles backed by a stored document; admin tokens are issued out of band.
ROLE_COLLECTIONS = {
    ORGANIZER_ROLE: "communities",
    VENDOR_ROLE: "vendors",
}

ACTOR_PROJECTION = {"password": 0}


@dataclass(frozen=True)
class Actor:
    id: ObjectId
    role: str
    document: Optional[Dict] = None


def hash_password(password: str) -> bytes:
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds))


def check_password(password: str, stored_hash) -> bool:
    if not password or not stored_hash:
        return False
    if isinstance(stored_hash, str):
        stored_hash = stored_hash.encode("utf-8")
    try:
        return bcrypt.checkpw(password.encode("utf-8"), stored_hash)
    except ValueError:
        return False


def issue_token(actor_id, role: str) -> str:
    return create_access_token(
        identity=str(actor_id), additional_claims={"role": role}
    )


def load_actor(*roles: str) -> Actor:
    """Validate the bearer token and resolve it to an actor holding one of ``roles``."""
    verify_jwt_in_request()
    role = get_jwt().get("role")
    if role not in roles:
        raise Unauthorized("This account cannot perform this action.")

    actor_id = normalize_object_id_value(get_jwt_identity())
    if actor_id is None:
        raise Unauthorized("Invalid token subject.")

    collection_name = ROLE_COLLECTIONS.get(role)
    if not collection_name:
        return Actor(id=actor_id, role=role)

    document = get_db()[collection_name].find_one({"_id": actor_id}, ACTOR_PROJECTION)
    if not document:
        raise Unauthorized("Account not found.")
    return Actor(id=actor_id, role=role, document=document)


def requires_actor(*roles: str):
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            kwargs["actor"] = load_actor(*roles)
            return view(*args, **kwargs)

        return wrapper

    return decorator


def register_jwt_handlers(jwt):
    @jwt.unauthorized_loader
    def missing_token(reason):
        return respond({"message": reason}, 401)

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return respond({"message": reason}, 401)

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return respond({"message": "Token has expired."}, 401)
