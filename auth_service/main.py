import logging
import time
from fastapi import FastAPI, Depends, HTTPException, status, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth_service import db as database
from auth_service import schemas
from auth_service.db import get_db, init_db
from auth_service.models import User
from auth_service.sessions import get_active_session, get_session_user, issue_session, read_token, revoke_session
from auth_service.utils import (
    AUTH_COOKIE_NAME,
    cookie_settings,
    generate_verification_code,
    get_password_hash,
    verification_expiry,
    verify_password,
)
from auth_service.verification import (
    InMemoryVerificationCodeStore,
    VerificationCodeStore,
    get_verification_store,
)

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"

try:
    init_db()
except Exception as e:
    logger.error(f"Error initializing database: {e}", exc_info=True)


app = FastAPI(
    title="Auth Service - Task Portal",
    description="Handles email verification, registration, login sessions and profile updates.",
    version="1.0.0"
)

# One store per app; swap it for a shared implementation when running several instances.
app.state.verification_store = InMemoryVerificationCodeStore()

# --- Prometheus metrics ---
REQUEST_COUNT = Counter(
    "auth_requests_total",
    "Total requests processed by Auth Service",
    ["method", "endpoint", "status_code"]
)
REQUEST_LATENCY = Histogram(
    "auth_request_latency_seconds",
    "Request latency in seconds for Auth Service",
    ["endpoint"]
)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start_time = time.time()
    response = None
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
    except Exception as exc:
        logger.error(f"Unhandled exception during request processing: {exc}", exc_info=True)
        response = JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
    finally:
        latency = time.time() - start_time
        endpoint = request.url.path
        final_status_code = getattr(response, 'status_code', status_code)

        REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=final_status_code
        ).inc()

    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Reports the first validation problem as a 400 with a field-level message."""
    errors = exc.errors()
    if not errors:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": "Invalid request"})
    first = errors[0]
    field = next((str(part) for part in reversed(first.get("loc", ())) if isinstance(part, str)), "body")
    message = f"{field}: {first.get('msg', 'invalid value')}"
    logger.info(f"Validation failed on {request.url.path}: {message}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": message})


# --- Health and metrics endpoints ---
@app.get("/metrics", tags=["Monitoring"])
def metrics():
    """Exposes application metrics for Prometheus."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health", tags=["Monitoring"])
def health_check():
    """
    Checks that the service is up and that the user table answers a query.
    Always answers the health envelope, also when the database was never reachable.
    """
    db_status = "error"
    if database.SessionLocal is None:
        logger.error("Health check: database session factory is not initialised.")
    else:
        db = database.SessionLocal()
        try:
            db.query(User.id).first()
            db_status = "ok"
        except Exception as e:
            logger.error(f"Health check database query failed: {e}", exc_info=True)
        finally:
            db.close()

    if db_status != "ok":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"success": False, "payload": {"status": "degraded", "db": db_status}, "message": "Health check failed"},
        )
    return {"success": True, "payload": {"status": "ok", "db": db_status}, "message": "Health check successful"}


# --- Helpers ---
def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(key=AUTH_COOKIE_NAME, value=token, **cookie_settings())


def _current_user(request: Request, db: Session) -> User:
    token = request.cookies.get(AUTH_COOKIE_NAME)
    session = get_active_session(db, token)
    if session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    user = get_session_user(db, session)
    if user is None:
        logger.warning(f"Session {session.id} points at missing user {session.user_id}.")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


# --- Verification endpoints ---

@app.post("/api/auth/send-verification", response_model=schemas.SendVerificationResponse, tags=["Verification"])
def send_verification(
    payload: schemas.SendVerificationRequest,
    store: VerificationCodeStore = Depends(get_verification_store),
):
    """
    Issues a six-digit code for the email, replacing any earlier code.
    There is no mail delivery yet; the code is logged and returned to the caller.
    """
    code = generate_verification_code()
    expires_at = verification_expiry()
    store.set(payload.email, code, expires_at)
    logger.info(f"Verification code for {payload.email}: {code}")
    return {"message": "Verification code sent successfully", "code": code, "expires_at": expires_at}


@app.post("/api/auth/verify-code", response_model=schemas.VerifyCodeResponse, tags=["Verification"])
def verify_code(
    payload: schemas.VerifyCodeRequest,
    store: VerificationCodeStore = Depends(get_verification_store),
):
    """Consumes the code for the email. Wrong, expired and missing codes are reported the same way."""
    if not store.verify(payload.email, payload.code):
        logger.warning(f"Verification failed for {payload.email}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired verification code")
    logger.info(f"Email verified: {payload.email}")
    return {"message": "Email verified successfully", "verified": True}


# --- Authentication endpoints ---

@app.post("/api/auth/register", response_model=schemas.AuthResponse, status_code=status.HTTP_201_CREATED, tags=["Authentication"])
def register(user: schemas.UserCreate, response: Response, db: Session = Depends(get_db)):
    """
    Creates an account for an email that has already been verified,
    then logs the new user in.
    """
    logger.info(f"Registration attempt for email: {user.email}")
    if not user.email_verified:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email must be verified before registration")

    if db.query(User).filter(User.email == user.email).first():
        logger.warning(f"Registration failed: email {user.email} already exists.")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="An account with this email already exists")

    if db.query(User).filter(User.username == user.username).first():
        logger.warning(f"Registration failed: username {user.username} already taken.")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This username is already taken")

    new_user = User(
        username=user.username,
        email=user.email,
        name=user.name,
        hashed_password=get_password_hash(user.password),
        email_verified=True,
    )

    try:
        # User and first session are committed together.
        db.add(new_user)
        db.flush()
        token, _ = issue_session(db, new_user, commit=False)
        db.commit()
        db.refresh(new_user)
    except IntegrityError:
        db.rollback()
        logger.warning(f"Registration raced with another signup for {user.email} / {user.username}.")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="An account with this email or username already exists")
    except Exception as e:
        db.rollback()
        logger.error(f"Database error during registration for {user.email}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="An error occurred during registration")

    _set_auth_cookie(response, token)
    logger.info(f"User created with ID: {new_user.id} for email: {user.email}")
    return {"user": schemas.UserResponse.model_validate(new_user), "message": "Registration successful"}


@app.post("/api/auth/login", response_model=schemas.AuthResponse, tags=["Authentication"])
def login(credentials: schemas.UserLogin, response: Response, db: Session = Depends(get_db)):
    """
    Authenticates by email and password and starts a session.
    Unknown emails and wrong passwords get the same answer.
    """
    logger.info(f"Login attempt for user: {credentials.email}")
    user = db.query(User).filter(User.email == credentials.email).first()

    if not verify_password(credentials.password, user.hashed_password if user else None):
        logger.warning(f"Login failed for user: {credentials.email}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)

    try:
        token, _ = issue_session(db, user)
    except Exception as e:
        db.rollback()
        logger.error(f"Could not create session for user_id {user.id}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="An error occurred during login")

    _set_auth_cookie(response, token)
    logger.info(f"Login successful for user_id: {user.id}")
    return {"user": schemas.UserResponse.model_validate(user), "message": "Login successful"}


@app.post("/api/auth/logout", response_model=schemas.MessageResponse, tags=["Authentication"])
def logout(request: Request, response: Response, db: Session = Depends(get_db)):
    """Deletes the session behind the cookie, if any, and clears the cookie."""
    token = request.cookies.get(AUTH_COOKIE_NAME)
    if token:
        if read_token(token) is not None:
            try:
                revoke_session(db, token)
            except Exception as e:
                db.rollback()
                logger.error(f"Could not revoke session: {e}", exc_info=True)
                raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="An error occurred during logout")
        response.delete_cookie(AUTH_COOKIE_NAME, path="/")
    return {"message": "Logout successful"}


@app.get("/api/auth/session", response_model=schemas.SessionResponse, tags=["Authentication"])
def current_session(request: Request, db: Session = Depends(get_db)):
    """Returns the user behind the current session cookie."""
    return {"user": schemas.UserResponse.model_validate(_current_user(request, db))}


@app.patch("/api/auth/profile", response_model=schemas.AuthResponse, tags=["Users"])
def update_profile(changes: schemas.ProfileUpdate, request: Request, db: Session = Depends(get_db)):
    """Updates the username and/or display name of the logged-in user."""
    user = _current_user(request, db)

    if changes.username is not None and changes.username != user.username:
        taken = db.query(User).filter(User.username == changes.username, User.id != user.id).first()
        if taken:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This username is already taken")
        user.username = changes.username
    if changes.name is not None:
        user.name = changes.name

    try:
        db.commit()
        db.refresh(user)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This username is already taken")
    except Exception as e:
        db.rollback()
        logger.error(f"Could not update profile of user_id {user.id}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="An error occurred while updating the profile")

    logger.info(f"Profile updated for user_id: {user.id}")
    return {"user": schemas.UserResponse.model_validate(user), "message": "Profile updated successfully"}
