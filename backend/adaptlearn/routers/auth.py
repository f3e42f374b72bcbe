import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, Field, field_validator
import logging

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db
from ..models import AuthUser, AuthSession, Profile

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

STUDENT = "student"
ADMIN = "admin"
# bcrypt ignores everything past 72 bytes
BCRYPT_MAX_BYTES = 72


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"
	role: str = STUDENT


class User(BaseModel):
	username: str
	role: str = STUDENT


class RegisterRequest(BaseModel):
	username: str = Field(min_length=3, max_length=128)
	password: str = Field(min_length=1)
	email: str = Field(min_length=3, max_length=256)
	full_name: Optional[str] = Field(default=None, max_length=256)

	@field_validator("username", "email", mode="before")
	@classmethod
	def _strip(cls, v):
		return v.strip() if isinstance(v, str) else v


def hash_password(password: str) -> str:
	clipped = password.encode("utf-8")[:BCRYPT_MAX_BYTES]
	return pwd_context.hash(clipped.decode("utf-8", errors="ignore"))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	clipped = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES].decode("utf-8", errors="ignore")
	return pwd_context.verify(clipped, hashed_password)


def role_for(username: str) -> str:
	return ADMIN if settings.admin_username and username == settings.admin_username else STUDENT


def create_account(db: Session, username: str, password: str, email: Optional[str] = None, full_name: Optional[str] = None) -> AuthUser:
	row = AuthUser(
		username=username,
		password_hash=hash_password(password),
		email=email,
		role=role_for(username),
		requests_limit=settings.default_requests_limit,
	)
	db.add(row)
	# Every account starts with a beginner profile at zero points
	db.add(Profile(username=username, full_name=full_name or email or username))
	db.commit()
	logger.info("account %s created with role %s", username, row.role)
	return row


def ensure_seed_user(db: Session) -> None:
	username = settings.seed_username
	password = settings.seed_password_plain
	if not username or not password:
		return
	if db.get(AuthUser, username) is None:
		create_account(db, username, password)


def authenticate_user(db: Session, username: str, password: str) -> Optional[AuthUser]:
	row = db.get(AuthUser, username)
	if row is None or not verify_password(password, row.password_hash):
		return None
	return row


def token_expiry(now: Optional[datetime] = None) -> datetime:
	now = now or datetime.now(timezone.utc)
	minutes = settings.access_token_expire_minutes
	delta = timedelta(minutes=minutes) if minutes and minutes > 0 else timedelta(days=30)
	try:
		return now + delta
	except OverflowError:
		return datetime.max.replace(tzinfo=timezone.utc)


def issue_token(db: Session, account: AuthUser) -> Token:
	"""Open a server-side session and sign a token that names it."""
	session_id = uuid.uuid4().hex
	claims = {"sub": account.username, "jti": session_id, "role": account.role, "exp": token_expiry()}
	try:
		db.merge(AuthSession(session_id=session_id, username=account.username))
		db.commit()
	except Exception:
		logger.exception("failed to persist auth session for %s", account.username)
		db.rollback()
	token = jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
	return Token(access_token=token, role=account.role or STUDENT)


def _decode(token: str) -> tuple:
	payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	return payload.get("sub"), payload.get("jti")


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	account = authenticate_user(db, form_data.username, form_data.password)
	if account is None:
		raise HTTPException(status_code=401, detail="Incorrect username or password")
	return issue_token(db, account)


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		username, jti = _decode(token)
	except JWTError:
		raise credentials_exception
	if username is None or jti is None:
		raise credentials_exception
	# Role comes from the account row so demotions apply to live tokens
	try:
		session_row = db.get(AuthSession, jti)
		account = db.get(AuthUser, username)
		if session_row is None or session_row.username != username or account is None:
			raise credentials_exception
		session_row.last_activity_at = datetime.utcnow()
		db.commit()
	except HTTPException:
		raise
	except Exception:
		# On DB errors, fail closed
		raise credentials_exception
	return User(username=username, role=account.role or STUDENT)


def require_admin(user: User = Depends(get_current_user)) -> User:
	if user.role != ADMIN:
		raise HTTPException(status_code=403, detail="Admin role required")
	return user


@router.get("/me", response_model=User)
async def me(user: User = Depends(get_current_user)):
	return user


@router.post("/logout", status_code=204)
async def logout(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)):
	try:
		_, jti = _decode(token)
	except JWTError:
		raise HTTPException(status_code=401, detail="Could not validate credentials")
	row = db.get(AuthSession, jti) if jti else None
	if row is not None:
		db.delete(row)
		db.commit()


@router.post("/register", status_code=201)
async def register(req: RegisterRequest, db: Session = Depends(get_db)):
	if db.get(AuthUser, req.username) is not None:
		raise HTTPException(status_code=409, detail="username already exists")
	account = create_account(db, req.username, req.password, email=req.email, full_name=req.full_name)
	return {"ok": True, "username": account.username, "role": account.role}
