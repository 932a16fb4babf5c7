import enum
import logging
import re
import secrets
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
MIN_PASSWORD_LENGTH = 6
MAX_TITLE_LENGTH = 100
RECIPE_FIELDS = ("title", "description", "ingredients", "instructions")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ErrorKind(enum.Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    INVALID_CREDENTIALS = "invalid_credentials"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Failure:
    """An expected domain error, returned instead of raised."""

    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class Validation:
    valid: bool
    error: Optional[str] = None


@dataclass
class UserProfile:
    """Outward-facing view of a user, without credentials."""

    id: int
    username: str
    email: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class User:
    id: int
    username: str
    email: str
    password_hash: str = field(repr=False)
    created_at: datetime = field(default_factory=utcnow)

    def sanitize(self) -> UserProfile:
        return UserProfile(
            id=self.id,
            username=self.username,
            email=self.email,
            created_at=self.created_at,
        )


@dataclass
class LoginResult:
    token: str
    user: UserProfile


@dataclass
class Recipe:
    id: int
    title: str
    ingredients: List[str]
    instructions: str
    created_by: int
    description: str = ""
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def copy(self) -> "Recipe":
        return replace(self, ingredients=list(self.ingredients))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "ingredients": list(self.ingredients),
            "instructions": self.instructions,
            "createdBy": self.created_by,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


def _is_blank(value) -> bool:
    return not isinstance(value, str) or not value.strip()


def _as_ingredient_list(value):
    if isinstance(value, str):
        return [value]
    return list(value)


class UserDirectory:
    """In-memory user store handling registration, login and profiles.

    Password hashing and token handling are delegated to the injected
    ``credentials`` (a ``CredentialStore``) and ``tokens`` (a
    ``TokenService``).
    """

    def __init__(self, credentials, tokens, seed: Optional[Iterable[User]] = None,
                 clock: Callable[[], datetime] = utcnow) -> None:
        self._credentials = credentials
        self._tokens = tokens
        self._clock = clock
        self._lock = threading.Lock()
        self._users: List[User] = [replace(u) for u in (seed or [])]
        self._dummy_hash: Optional[str] = None
        self._next_id = max((u.id for u in self._users), default=0) + 1

    def validate_email(self, email) -> bool:
        return isinstance(email, str) and bool(EMAIL_PATTERN.match(email))

    def validate_password(self, password) -> Validation:
        if len(password) < MIN_PASSWORD_LENGTH:
            return Validation(False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return Validation(True)

    def _find_taken(self, username, email, exclude_id=None) -> Optional[User]:
        for user in self._users:
            if user.id == exclude_id:
                continue
            if user.username == username or user.email == email:
                return user
        return None

    def _find(self, user_id) -> Optional[User]:
        return next((u for u in self._users if u.id == user_id), None)

    def register(self, username, email, password) -> Union[UserProfile, Failure]:
        if _is_blank(username) or _is_blank(email) or not isinstance(password, str) or not password:
            return Failure(ErrorKind.VALIDATION, "All fields are required")

        if not self.validate_email(email):
            return Failure(ErrorKind.VALIDATION, "Invalid email format")

        check = self.validate_password(password)
        if not check.valid:
            return Failure(ErrorKind.VALIDATION, check.error)

        conflict = Failure(ErrorKind.CONFLICT, "Username or email already exists")
        with self._lock:
            if self._find_taken(username, email):
                return conflict

        # Hash outside the lock; uniqueness is checked again before insert
        password_hash = self._credentials.hash(password)

        with self._lock:
            if self._find_taken(username, email):
                return conflict
            user = User(
                id=self._next_id,
                username=username,
                email=email,
                password_hash=password_hash,
                created_at=self._clock(),
            )
            self._next_id += 1
            self._users.append(user)

        logger.info("Registered user %s (id=%s)", user.username, user.id)
        return user.sanitize()

    def login(self, username, password) -> Union[LoginResult, Failure]:
        if not username or not password:
            return Failure(ErrorKind.VALIDATION, "Username and password are required")

        invalid = Failure(ErrorKind.INVALID_CREDENTIALS, "Invalid credentials")

        with self._lock:
            user = next((u for u in self._users if u.username == username), None)
        if user is None:
            # Spend the same hashing time as a wrong password would
            self._credentials.verify(password, self._dummy_digest())
            logger.info("Login failed for unknown username")
            return invalid

        if not self._credentials.verify(password, user.password_hash):
            logger.info("Login failed for user id=%s", user.id)
            return invalid

        token = self._tokens.issue({"user_id": user.id, "username": user.username})
        logger.info("User id=%s logged in", user.id)
        return LoginResult(token=token, user=user.sanitize())

    def _dummy_digest(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = self._credentials.hash(secrets.token_hex(16))
        return self._dummy_hash

    def get_profile(self, user_id) -> Optional[UserProfile]:
        with self._lock:
            user = self._find(user_id)
            return user.sanitize() if user else None

    def update_profile(self, user_id, updates: Dict[str, Any]) -> Union[UserProfile, Failure]:
        """Apply ``username`` and ``email`` from ``updates``.

        Missing or empty values leave the field as it is; any other keys are
        ignored.
        """
        username = updates.get("username")
        email = updates.get("email")

        with self._lock:
            user = self._find(user_id)
            if user is None:
                return Failure(ErrorKind.NOT_FOUND, "User not found")

            if username and _is_blank(username):
                return Failure(ErrorKind.VALIDATION, "Username must be a non-empty string")
            if email and not self.validate_email(email):
                return Failure(ErrorKind.VALIDATION, "Invalid email format")

            if username or email:
                taken = self._find_taken(username or None, email or None, exclude_id=user.id)
                if taken is not None:
                    return Failure(ErrorKind.CONFLICT, "Username or email already exists")

            if username:
                user.username = username
            if email:
                user.email = email

            return user.sanitize()

    def list(self) -> List[UserProfile]:
        with self._lock:
            return [u.sanitize() for u in self._users]

    def count(self) -> int:
        with self._lock:
            return len(self._users)

    def verify_token(self, token):
        return self._tokens.verify(token)


class RecipeCatalog:
    """In-memory recipe store; mutations are restricted to the owner."""

    def __init__(self, seed: Optional[Iterable[Recipe]] = None,
                 clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._recipes: List[Recipe] = [r.copy() for r in (seed or [])]
        self._next_id = max((r.id for r in self._recipes), default=0) + 1

    def validate(self, data: Dict[str, Any]) -> Validation:
        # Check order fixes which message wins when several fields are bad
        title = data.get("title")
        if _is_blank(title):
            return Validation(False, "Title is required")

        ingredients = data.get("ingredients")
        if isinstance(ingredients, str):
            if not ingredients.strip():
                return Validation(False, "At least one ingredient is required")
        elif not isinstance(ingredients, (list, tuple)) or len(ingredients) == 0:
            return Validation(False, "At least one ingredient is required")
        elif not all(isinstance(item, str) for item in ingredients):
            return Validation(False, "Ingredients must be a list of strings")

        if _is_blank(data.get("instructions")):
            return Validation(False, "Instructions are required")

        if len(title) > MAX_TITLE_LENGTH:
            return Validation(False, f"Title must be less than {MAX_TITLE_LENGTH} characters")

        return Validation(True)

    def create(self, data: Dict[str, Any], owner_id: int) -> Union[Recipe, Failure]:
        validation = self.validate(data)
        if not validation.valid:
            return Failure(ErrorKind.VALIDATION, validation.error)

        description = data.get("description")
        now = self._clock()
        with self._lock:
            recipe = Recipe(
                id=self._next_id,
                title=data["title"],
                description=description if isinstance(description, str) else "",
                ingredients=_as_ingredient_list(data["ingredients"]),
                instructions=data["instructions"],
                created_by=owner_id,
                created_at=now,
                updated_at=now,
            )
            self._next_id += 1
            self._recipes.append(recipe)

        logger.info("User id=%s created recipe id=%s", owner_id, recipe.id)
        return recipe.copy()

    def get_all(self) -> List[Recipe]:
        with self._lock:
            return [r.copy() for r in self._recipes]

    def get_by_id(self, recipe_id) -> Optional[Recipe]:
        with self._lock:
            recipe = self._find(recipe_id)
            return recipe.copy() if recipe else None

    def get_by_user_id(self, owner_id) -> List[Recipe]:
        with self._lock:
            return [r.copy() for r in self._recipes if r.created_by == owner_id]

    def _find(self, recipe_id) -> Optional[Recipe]:
        return next((r for r in self._recipes if r.id == recipe_id), None)

    def update(self, recipe_id, updates: Dict[str, Any], caller_id) -> Union[Recipe, Failure]:
        changes = {key: updates[key] for key in RECIPE_FIELDS if key in updates}

        with self._lock:
            recipe = self._find(recipe_id)
            if recipe is None:
                return Failure(ErrorKind.NOT_FOUND, "Recipe not found")

            if recipe.created_by != caller_id:
                return Failure(ErrorKind.FORBIDDEN, "You can only update your own recipes")

            merged = {
                "title": recipe.title,
                "description": recipe.description,
                "ingredients": recipe.ingredients,
                "instructions": recipe.instructions,
            }
            merged.update(changes)
            validation = self.validate(merged)
            if not validation.valid:
                return Failure(ErrorKind.VALIDATION, validation.error)

            if "description" in changes and not isinstance(changes["description"], str):
                return Failure(ErrorKind.VALIDATION, "Description must be a string")

            recipe.title = merged["title"]
            recipe.description = merged["description"]
            recipe.ingredients = _as_ingredient_list(merged["ingredients"])
            recipe.instructions = merged["instructions"]
            recipe.updated_at = max(self._clock(), recipe.created_at)
            result = recipe.copy()

        logger.info("User id=%s updated recipe id=%s", caller_id, recipe_id)
        return result

    def delete(self, recipe_id, caller_id) -> Optional[Failure]:
        with self._lock:
            recipe = self._find(recipe_id)
            if recipe is None:
                return Failure(ErrorKind.NOT_FOUND, "Recipe not found")

            if recipe.created_by != caller_id:
                return Failure(ErrorKind.FORBIDDEN, "You can only delete your own recipes")

            self._recipes.remove(recipe)

        logger.info("User id=%s deleted recipe id=%s", caller_id, recipe_id)
        return None

    def search(self, query: str) -> List[Recipe]:
        needle = query.lower()
        with self._lock:
            return [
                r.copy()
                for r in self._recipes
                if needle in r.title.lower()
                or any(needle in ingredient.lower() for ingredient in r.ingredients)
            ]

    def count(self) -> int:
        with self._lock:
            return len(self._recipes)


def demo_users(credentials) -> List[User]:
    return [
        User(id=1, username="john_doe", email="john@example.com",
             password_hash=credentials.hash("password123")),
        User(id=2, username="jane_smith", email="jane@example.com",
             password_hash=credentials.hash("password456")),
    ]


def demo_recipes() -> List[Recipe]:
    return [
        Recipe(
            id=1,
            title="Spaghetti Carbonara",
            description="Classic Italian pasta with creamy sauce",
            ingredients=["pasta", "eggs", "bacon", "parmesan", "black pepper"],
            instructions="Cook pasta, fry bacon, mix with eggs and cheese",
            created_by=1,
            created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
            updated_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        ),
        Recipe(
            id=2,
            title="Chocolate Cake",
            description="Decadent chocolate dessert",
            ingredients=["flour", "chocolate", "eggs", "sugar", "butter"],
            instructions="Mix ingredients, bake at 350°F for 30 minutes",
            created_by=2,
            created_at=datetime(2025, 1, 2, tzinfo=timezone.utc),
            updated_at=datetime(2025, 1, 2, tzinfo=timezone.utc),
        ),
    ]
