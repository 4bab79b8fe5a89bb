from flask import Blueprint, current_app, request
from werkzeug.exceptions import BadRequest, Conflict, Unauthorized

from marketplace.auth import (
    ADMIN_ROLE,
    ORGANIZER_ROLE,
    Actor,
    check_password,
    hash_password,
    issue_token,
    load_actor,
    requires_actor,
)
from marketplace.errors import respond
from marketplace.extensions import get_db
from marketplace.filters import CommunityQuery
from marketplace.read_models import (
    community_by_code,
    community_by_id,
    community_by_slug,
    community_profile,
    find_community_event,
    list_communities,
    list_community_events,
)
from marketplace.serializers import normalize_email, parse_object_id, serialize_document
from marketplace.uploads import remove_upload_urls, store_upload_urls
from marketplace.workflows import (
    COMMUNITY_ADMIN_FIELDS,
    COMMUNITY_PROFILE_FIELDS,
    append_community_event,
    build_sparse_update,
    create_community,
    delete_community,
    merge_community_event,
    set_announcement,
    update_community,
)

communities_bp = Blueprint("communities", __name__, url_prefix="/communities")

PROFILE_IMAGE_FIELDS = ("logoUrl", "backgroundUrl")


def _request_payload():
    payload = request.form.to_dict() if request.form else {}
    if not payload:
        payload = request.get_json(silent=True) or {}
    return payload


def _ensure_email_available(db, email: str):
    if db.communities.find_one({"email": email}, {"_id": 1}):
        raise Conflict("A community with this email already exists.")


@communities_bp.route("", methods=["GET"])
def list_communities_route():
    db = get_db()
    code = (request.args.get("code") or "").strip()
    if code:
        return respond({"community": community_by_code(db, code)})

    slug = (request.args.get("slug") or "").strip()
    if slug:
        return respond({"community": community_by_slug(db, slug)})

    query = CommunityQuery.from_args(request.args)
    return respond({"communities": list_communities(db, query)})


@communities_bp.route("/event", methods=["GET"])
@requires_actor(ORGANIZER_ROLE)
def list_events(actor: Actor):
    return respond({"events": list_community_events(get_db(), actor.document)})


@communities_bp.route("/event/<event_id>", methods=["GET"])
@requires_actor(ORGANIZER_ROLE)
def get_event(event_id: str, actor: Actor):
    return respond({"event": find_community_event(actor.document, event_id)})


@communities_bp.route("/<community_id>", methods=["GET"])
def get_community(community_id: str):
    object_id = parse_object_id(community_id, "community identifier")
    return respond({"community": community_by_id(get_db(), object_id)})


@communities_bp.route("/login", methods=["POST"])
def login():
    db = get_db()

    if request.headers.get("Authorization"):
        actor = load_actor(ORGANIZER_ROLE)
        profile = community_profile(db, actor.id)
        if not profile:
            raise Unauthorized("Account not found.")
        return respond({"profile": serialize_document(profile)})

    payload = request.get_json(silent=True) or {}
    email = normalize_email(payload.get("email"))
    password = str(payload.get("password") or "")
    if not email or not password:
        raise BadRequest("Email and password are required.")

    account = db.communities.find_one({"email": email}, {"password": 1})
    if not account or not check_password(password, account.get("password")):
        return respond({"message": "Invalid credentials"}, 401)

    token = issue_token(account["_id"], ORGANIZER_ROLE)
    profile = community_profile(db, account["_id"])
    current_app.logger.info("Community %s signed in", account["_id"])
    return respond({"profile": serialize_document(profile), "token": token})


@communities_bp.route("/register", methods=["POST"])
def register():
    db = get_db()
    payload = request.get_json(silent=True) or {}
    email = normalize_email(payload.get("email"))
    password = str(payload.get("password") or "")
    if not email or not password:
        raise BadRequest("Email and password are required.")
    _ensure_email_available(db, email)

    fields = build_sparse_update(payload, COMMUNITY_ADMIN_FIELDS)
    fields.pop("status", None)
    fields["email"] = email
    fields["password"] = hash_password(password)
    community = create_community(db, fields)

    current_app.logger.info("Community %s registered", community["_id"])
    return respond({"community": serialize_document(community_profile(db, community["_id"]))}, 201)


@communities_bp.route("", methods=["POST"])
@requires_actor(ADMIN_ROLE)
def create_community_route(actor: Actor):
    db = get_db()
    payload = request.get_json(silent=True) or {}
    fields = build_sparse_update(payload, COMMUNITY_ADMIN_FIELDS)
    if not fields.get("name"):
        raise BadRequest("A community name is required.")
    if fields.get("email"):
        _ensure_email_available(db, fields["email"])
    password = str(payload.get("password") or "")
    if password:
        fields["password"] = hash_password(password)

    community = create_community(db, fields)
    return respond({"community": community_by_id(db, community["_id"])}, 201)


@communities_bp.route("/profile", methods=["PUT"])
@requires_actor(ORGANIZER_ROLE)
def update_profile(actor: Actor):
    changes = build_sparse_update(_request_payload(), COMMUNITY_PROFILE_FIELDS)

    image_urls = store_upload_urls(request.files.getlist("images"), len(PROFILE_IMAGE_FIELDS))
    for field, url in zip(PROFILE_IMAGE_FIELDS, image_urls):
        if url:
            changes[f"images.{field}"] = url

    try:
        community = update_community(get_db(), actor.id, changes)
    except Exception:
        remove_upload_urls(image_urls)
        raise
    return respond({"community": serialize_document(community)})


@communities_bp.route("/event", methods=["PUT"])
@requires_actor(ORGANIZER_ROLE)
def add_event(actor: Actor):
    event = append_community_event(get_db(), actor.id, request.get_json(silent=True) or {})
    return respond({"event": serialize_document(event)})


@communities_bp.route("/event/<event_id>", methods=["PUT"])
@requires_actor(ORGANIZER_ROLE)
def update_event(event_id: str, actor: Actor):
    merge_community_event(get_db(), actor.id, event_id, request.get_json(silent=True) or {})
    return respond()


@communities_bp.route("/announcement", methods=["PUT"])
@requires_actor(ORGANIZER_ROLE)
def update_announcement(actor: Actor):
    payload = request.get_json(silent=True) or {}
    text = payload.get("announcement")
    if not isinstance(text, str):
        raise BadRequest("Announcement text is required.")
    community = set_announcement(get_db(), actor.id, text.strip())
    return respond({"community": serialize_document(community)})


@communities_bp.route("/<community_id>", methods=["PUT"])
@requires_actor(ADMIN_ROLE)
def update_community_route(community_id: str, actor: Actor):
    object_id = parse_object_id(community_id, "community identifier")
    payload = request.get_json(silent=True) or {}
    changes = build_sparse_update(payload, COMMUNITY_ADMIN_FIELDS)
    password = str(payload.get("password") or "")
    if password:
        changes["password"] = hash_password(password)

    community = update_community(get_db(), object_id, changes)
    return respond({"community": serialize_document(community)})


@communities_bp.route("/<community_id>", methods=["DELETE"])
@requires_actor(ADMIN_ROLE)
def delete_community_route(community_id: str, actor: Actor):
    object_id = parse_object_id(community_id, "community identifier")
    community = delete_community(get_db(), object_id)
    current_app.logger.info("Community %s deleted by admin %s", object_id, actor.id)
    return respond({"community": serialize_document(community)})
