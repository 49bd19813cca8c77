from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
import logging
import uuid

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db, utcnow
from ..deps import get_context
from ..flows import FlowContext, manage_user
from ..flows.manage_user import default_avatar, new_user_id
from ..models import AuthSession
from ..schemas import CamelModel, User, UserData

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


def hash_password(password: str) -> str:
	return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
	if not hashed_password:
		return False
	return pwd_context.verify(plain_password, hashed_password)


def authenticate_user(ctx: FlowContext, email: str, password: str) -> Optional[User]:
	user = ctx.users.get_by_email(email.strip().lower())
	if user is None or not verify_password(password, ctx.users.password_hash(user.id)):
		return None
	return user


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	delta = expires_delta
	if delta is None:
		minutes = settings.access_token_expire_minutes
		delta = timedelta(minutes=minutes) if minutes > 0 else timedelta(days=30)
	return datetime.now(timezone.utc) + delta


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	to_encode.update({"exp": _resolve_expiry(expires_delta)})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


@router.post("/token", response_model=Token)
async def login(
	form_data: OAuth2PasswordRequestForm = Depends(),
	db: Session = Depends(get_db),
	ctx: FlowContext = Depends(get_context),
):
	# The OAuth2 form calls it "username"; accounts sign in with their email
	user = authenticate_user(ctx, form_data.username, form_data.password)
	if not user:
		raise HTTPException(status_code=401, detail="Incorrect email or password")
	if user.status != "Active":
		raise HTTPException(status_code=403, detail="Account is inactive")
	session_id = uuid.uuid4().hex
	access_token = create_access_token({"sub": user.id, "jti": session_id, "role": user.role})
	try:
		db.merge(AuthSession(session_id=session_id, user_id=user.id))
		db.commit()
	except Exception:
		db.rollback()
		logger.exception("Could not persist session for user %s", user.id)
		raise HTTPException(status_code=500, detail="Could not start session")
	ctx.users.update(user.id, UserData(last_login=ctx.clock().date().isoformat()))
	return Token(access_token=access_token)


def _decode(token: str, db: Session, ctx: FlowContext) -> User:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		user_id: str | None = payload.get("sub")
		jti: str | None = payload.get("jti")
		if user_id is None or jti is None:
			raise credentials_exception
	except JWTError:
		raise credentials_exception
	# A session row must still exist so sessions can be revoked server-side
	try:
		row = db.get(AuthSession, jti)
		if not row or row.user_id != user_id:
			raise credentials_exception
		row.last_activity_at = utcnow()
		db.add(row)
		db.commit()
	except HTTPException:
		raise
	except Exception:
		# On DB errors, fail closed
		raise credentials_exception
	user = ctx.users.get(user_id)
	if user is None:
		raise credentials_exception
	return user


def get_current_user(
	token: str = Depends(oauth2_scheme),
	db: Session = Depends(get_db),
	ctx: FlowContext = Depends(get_context),
) -> User:
	return _decode(token, db, ctx)


def require_admin(user: User = Depends(get_current_user)) -> User:
	if user.role != "admin":
		raise HTTPException(status_code=403, detail="Forbidden")
	return user


@router.get("/me", response_model=User)
async def me(user: User = Depends(get_current_user)):
	return user


class ProfileUpdate(CamelModel):
	name: Optional[str] = None
	phone: Optional[str] = None
	avatar: Optional[str] = None


@router.put("/me", response_model=User)
async def update_me(req: ProfileUpdate, user: User = Depends(get_current_user), ctx: FlowContext = Depends(get_context)):
	if req.name is not None and not req.name.strip():
		raise HTTPException(status_code=400, detail="name must not be empty")
	result = await manage_user(
		{"action": "update", "userId": user.id, "userData": req.model_dump(exclude_none=True, by_alias=True)},
		ctx,
	)
	if not result.success:
		raise HTTPException(status_code=400, detail=result.message)
	return result.user


class RegisterRequest(BaseModel):
	name: str
	email: str
	password: str
	phone: str = ""


@router.post("/register", status_code=201, response_model=User)
async def register(req: RegisterRequest, ctx: FlowContext = Depends(get_context)):
	name = (req.name or "").strip()
	email = (req.email or "").strip().lower()
	password = req.password or ""
	if not name or not email or not password:
		raise HTTPException(status_code=400, detail="name, email and password are required")
	if "@" not in email:
		raise HTTPException(status_code=400, detail="email is invalid")
	if len(password) < 6:
		raise HTTPException(status_code=400, detail="password must be at least 6 characters")
	if ctx.users.get_by_email(email) is not None:
		raise HTTPException(status_code=409, detail="email already registered")
	# Self sign-up always creates a learner; admins are promoted from the back-office
	result = await manage_user(
		{
			"action": "create",
			"userId": new_user_id(),
			"userData": {"name": name, "email": email, "phone": req.phone.strip(), "role": "user"},
		},
		ctx,
	)
	if not result.success or result.user is None:
		raise HTTPException(status_code=400, detail=result.message)
	ctx.users.put(result.user, password_hash=hash_password(password))
	logger.info("Registered user %s", result.user.id)
	return result.user


class VerifyRequest(BaseModel):
	token: str = ""


@router.post("/verify")
async def verify(req: VerifyRequest, db: Session = Depends(get_db), ctx: FlowContext = Depends(get_context)):
	if not req.token:
		raise HTTPException(status_code=400, detail="Token not provided")
	try:
		user = _decode(req.token, db, ctx)
	except HTTPException:
		raise HTTPException(status_code=401, detail="Invalid token")
	if user.role != "admin":
		raise HTTPException(status_code=403, detail="Forbidden")
	return {"success": True, "uid": user.id, "email": user.email, "role": user.role}


def seed_admin(ctx: FlowContext) -> Optional[User]:
	email = (settings.seed_admin_email or "").strip().lower()
	password = settings.seed_admin_password
	if not email or not password:
		return None
	existing = ctx.users.get_by_email(email)
	if existing is not None:
		return existing
	user_id = new_user_id()
	user = User(
		id=user_id,
		name="Administrator",
		email=email,
		avatar=default_avatar(user_id),
		role="admin",
		last_login=ctx.clock().date().isoformat(),
	)
	ctx.users.put(user, password_hash=hash_password(password))
	logger.info("Seeded admin account %s", email)
	return user
