import logging
import mimetypes
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, List, Optional, Union

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field

import config
import database
from matcher import opposite_role, pair_mentors_with_mentees, parse_preferences, suggest_matches_for_user
from security import hash_password, new_access_token, validate_email_address, verify_password

LOG_LEVEL = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
    logging.getLogger(name).setLevel(LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    database.init_db()
    Path(config.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
    logger.info("Database ready at %s, uploads in %s", config.DATABASE_FILE, config.UPLOAD_DIR)
    yield


app = FastAPI(title="MentorMatch API", lifespan=lifespan)

# ----------------------
# Pydantic models
# ----------------------
Preferences = Optional[Union[str, List[str]]]


class RegisterPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(min_length=config.USERNAME_MIN_LENGTH, max_length=config.USERNAME_MAX_LENGTH)
    password: str
    email: str
    first_name: str = Field(alias="firstName", min_length=1)
    last_name: str = Field(alias="lastName", min_length=1)
    role: str = "mentee"
    preferences: Preferences = None
    bio: Optional[str] = None


class LoginPayload(BaseModel):
    username: str
    password: str


class UpdatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: Optional[str] = Field(default=None, min_length=config.USERNAME_MIN_LENGTH,
                                    max_length=config.USERNAME_MAX_LENGTH)
    password: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = Field(default=None, alias="firstName", min_length=1)
    last_name: Optional[str] = Field(default=None, alias="lastName", min_length=1)
    role: Optional[str] = None
    preferences: Preferences = None
    bio: Optional[str] = None


class SecretPayload(BaseModel):
    message: str = Field(min_length=config.SECRET_MIN_LENGTH, max_length=config.SECRET_MAX_LENGTH)


# ----------------------
# Helpers
# ----------------------
def fail(status_code: int, response, message: Optional[str] = None, **extra) -> JSONResponse:
    content = {"success": False, "response": response}
    if message:
        content["message"] = message
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def public_profile(user: Dict) -> Dict:
    return {
        "id": user["user_id"],
        "username": user["username"],
        "firstName": user["first_name"],
        "lastName": user["last_name"],
        "role": user["role"],
        "preferences": parse_preferences(user["preferences"]),
        "bio": user["bio"],
        "hasPicture": bool(user["picture"]),
    }


def password_error(password: str) -> Optional[str]:
    if not config.PASSWORD_MIN_LENGTH <= len(password) <= config.PASSWORD_MAX_LENGTH:
        return (f"Password must be between {config.PASSWORD_MIN_LENGTH} "
                f"and {config.PASSWORD_MAX_LENGTH} characters")
    if len(password.encode("utf-8")) > config.PASSWORD_MAX_BYTES:
        return f"Password must be at most {config.PASSWORD_MAX_BYTES} bytes when UTF-8 encoded"
    return None


def role_error(role: str) -> Optional[str]:
    if role not in config.ROLES:
        return f"Role must be one of: {', '.join(config.ROLES)}"
    return None


def remove_picture_file(user: Dict) -> None:
    if user.get("picture"):
        Path(user["picture"]).unlink(missing_ok=True)


# ----------------------
# Error handlers
# ----------------------
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return fail(400, jsonable_encoder(exc.errors()), "Invalid request")


@app.exception_handler(sqlite3.Error)
async def database_error_handler(request: Request, exc: sqlite3.Error):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return fail(500, str(exc))


# ----------------------
# Middleware to resolve the access token on protected routes
# ----------------------
PROTECTED_PATHS = {"/users", "/users/suggestions", "/secrets", "/match"}


def requires_auth(request: Request) -> bool:
    path = request.url.path
    if path in PROTECTED_PATHS:
        return True
    return path.startswith("/user/") and request.method in ("POST", "PATCH", "DELETE")


@app.middleware("http")
async def authenticate_user(request: Request, call_next):
    if not requires_auth(request):
        return await call_next(request)
    token = request.headers.get("Authorization", "")
    if token.startswith("Bearer "):
        token = token.split("Bearer ", 1)[1]
    try:
        user = database.get_user_by_token(token.strip())
    except sqlite3.Error as e:
        logger.exception("Could not look up access token")
        return fail(500, str(e))
    if not user:
        return fail(401, "Please log in", loggedOut=True)
    request.state.user = user
    return await call_next(request)


# ----------------------
# Accounts
# ----------------------
@app.get("/")
def root():
    return {"status": "ok", "service": "MentorMatch API"}


@app.post("/register", status_code=201)
def register(payload: RegisterPayload):
    email = validate_email_address(payload.email)
    if not email:
        return fail(400, "Invalid email", "Please enter a valid email address")
    error = password_error(payload.password) or role_error(payload.role)
    if error:
        return fail(400, error, error)

    prefs = parse_preferences(payload.preferences)
    try:
        user = database.create_user(
            username=payload.username,
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=email,
            password=hash_password(payload.password),
            role=payload.role,
            access_token=new_access_token(),
            preferences=",".join(prefs) if prefs else None,
            bio=payload.bio,
        )
    except sqlite3.IntegrityError as e:
        logger.info("Registration rejected for %s: %s", payload.username, e)
        return fail(400, str(e), "Could not create user")

    logger.info("Registered %s %s", user["role"], user["username"])
    return {
        "success": True,
        "response": {
            "username": user["username"],
            "id": user["user_id"],
            "accessToken": user["access_token"],
        },
    }


@app.post("/login")
def login(payload: LoginPayload):
    user = database.get_user_by_username(payload.username)
    if user and verify_password(payload.password, user["password"]):
        return {
            "success": True,
            "response": {
                "username": user["username"],
                "id": user["user_id"],
                "accessToken": user["access_token"],
                "message": "Login successful",
            },
        }
    return fail(400, "Credentials do not match")


# ----------------------
# Profiles
# ----------------------
@app.get("/user/{user_id}")
def get_user(user_id: str):
    user = database.get_user(user_id)
    if not user:
        return fail(400, "User not found")
    return {"success": True, "response": {**public_profile(user), "message": "User found"}}


@app.patch("/user/{user_id}")
def update_user(user_id: str, payload: UpdatePayload, request: Request):
    if not database.get_user(user_id):
        return fail(400, "User not found")
    if request.state.user["user_id"] != user_id:
        return fail(403, "You can only change your own profile")

    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if "email" in changes:
        changes["email"] = validate_email_address(changes["email"])
        if not changes["email"]:
            return fail(400, "Invalid email", "Please enter a valid email address")
    if "password" in changes:
        error = password_error(changes["password"])
        if error:
            return fail(400, error, error)
        changes["password"] = hash_password(changes["password"])
    if "role" in changes:
        error = role_error(changes["role"])
        if error:
            return fail(400, error, error)
    if "preferences" in changes:
        changes["preferences"] = ",".join(parse_preferences(changes["preferences"]))

    try:
        user = database.update_user(user_id, changes)
    except sqlite3.IntegrityError as e:
        return fail(400, str(e), "Could not update user")
    if not user:
        return fail(400, "User not found")
    return {"success": True, "response": {**public_profile(user), "message": "User updated"}}


@app.delete("/user/{user_id}")
def delete_user(user_id: str, request: Request):
    if not database.get_user(user_id):
        return fail(400, "User not found")
    if request.state.user["user_id"] != user_id:
        return fail(403, "You can only delete your own profile")

    user = database.delete_user(user_id)
    if not user:
        return fail(400, "User not found")
    remove_picture_file(user)
    logger.info("Deleted user %s", user["username"])
    return {"success": True, "response": {**public_profile(user), "message": "User deleted"}}


@app.post("/user/{user_id}/picture", status_code=201)
async def upload_picture(user_id: str, request: Request, picture: UploadFile = File(...)):
    user = database.get_user(user_id)
    if not user:
        return fail(400, "User not found")
    if request.state.user["user_id"] != user_id:
        return fail(403, "You can only change your own picture")

    extension = config.ALLOWED_PICTURE_TYPES.get(picture.content_type)
    if not extension:
        return fail(400, f"Unsupported picture type: {picture.content_type}")
    data = await picture.read(config.MAX_PICTURE_BYTES + 1)
    if not data:
        return fail(400, "Picture is empty")
    if len(data) > config.MAX_PICTURE_BYTES:
        return fail(400, f"Picture is larger than {config.MAX_PICTURE_BYTES} bytes")

    upload_dir = Path(config.UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    path = upload_dir / f"{user_id}{extension}"
    if user["picture"] and Path(user["picture"]) != path:
        remove_picture_file(user)
    path.write_bytes(data)
    database.update_user(user_id, {"picture": str(path)})
    return {"success": True, "response": {"id": user_id, "size": len(data), "message": "Picture uploaded"}}


@app.get("/user/{user_id}/picture")
def get_picture(user_id: str):
    user = database.get_user(user_id)
    if not user:
        return fail(400, "User not found")
    if not user["picture"] or not Path(user["picture"]).is_file():
        return fail(400, "User has no picture")
    media_type, _ = mimetypes.guess_type(user["picture"])
    return FileResponse(user["picture"], media_type=media_type)


# ----------------------
# Browsing & matching
# ----------------------
@app.get("/users")
def list_users(request: Request, matching: bool = False):
    me = request.state.user
    my_prefs = set(parse_preferences(me["preferences"]))
    profiles = [public_profile(u) for u in database.get_all_users(role=opposite_role(me["role"]))]
    if matching:
        profiles = [p for p in profiles if my_prefs & set(p["preferences"])]
    return {"success": True, "response": {"users": profiles}}


@app.get("/users/suggestions")
def user_suggestions(request: Request):
    return {"success": True, "response": {"suggestions": suggest_matches_for_user(request.state.user["user_id"])}}


@app.get("/preferences")
def list_preferences():
    unique = []
    for raw in database.get_all_preferences():
        for pref in parse_preferences(raw):
            if pref not in unique:
                unique.append(pref)
    return {"success": True, "response": {"preferences": unique}}


@app.get("/match")
def match():
    mentors = [public_profile(u) for u in database.get_all_users(role="mentor")]
    mentees = [public_profile(u) for u in database.get_all_users(role="mentee")]
    result = pair_mentors_with_mentees(mentors, mentees)
    logger.info("Matched %d pairs from %d mentors and %d mentees",
                len(result["pairs"]), len(mentors), len(mentees))
    return {
        "success": True,
        "response": {
            "matchedPairs": result["pairs"],
            "unmatchedMentors": [m["id"] for m in result["unmatched_mentors"]],
            "unmatchedMentees": [m["id"] for m in result["unmatched_mentees"]],
        },
    }


# ----------------------
# Secrets
# ----------------------
def secret_view(secret: Dict) -> Dict:
    return {"id": secret["secret_id"], "message": secret["message"], "createdAt": secret["created_at"]}


@app.get("/secrets")
def get_secrets(request: Request):
    secrets = database.get_secrets(request.state.user["user_id"], limit=config.SECRETS_LIMIT)
    return {"success": True, "response": [secret_view(s) for s in secrets]}


@app.post("/secrets", status_code=201)
def add_secret(payload: SecretPayload, request: Request):
    secret = database.add_secret(request.state.user["user_id"], payload.message)
    return {"success": True, "response": secret_view(secret)}
