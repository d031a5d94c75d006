import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from database import Database, serialize
from errors import DuplicateEmail, EmptyCart, InvalidCredentials, NotFound
from schemas import (
    DEFAULT_ORDER_STATUS,
    CustomerSnapshot,
    Order,
    OrderItem,
    OrderOut,
    OwnerOut,
    Product,
    ProductOut,
    User,
    UserOut,
)
from security import dummy_verify, hash_password, verify_password

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]

SEED_PRODUCTS = [
    {
        "name": "Arabic Coffee Dallah Set",
        "description": "Brass dallah with six finjan cups",
        "price": 149.0,
    },
    {
        "name": "Medjool Dates Gift Box 1kg",
        "description": "Premium dates in a wooden presentation box",
        "price": 85.5,
    },
    {
        "name": "Oud Perfume 50ml",
        "description": "Long-lasting oud and amber fragrance",
        "price": 220.0,
    },
    {
        "name": "Silk Pashmina Scarf",
        "description": "Hand-finished pashmina, assorted colours",
        "price": 65.0,
    },
    {
        "name": "Bluetooth Speaker Mini",
        "description": "Pocket speaker with 12h battery",
        "price": 99.0,
    },
]


def _object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFound("User not found")


def _user_out(doc: dict) -> UserOut:
    d = serialize(doc)
    d.pop("password_hash", None)
    return UserOut(**d)


class CredentialStore:
    """Users and their salted password hashes."""

    collection = "user"

    def __init__(self, database: Database):
        self.database = database

    def register(self, name: str, email: str, phone: str, password: str, role: str = "customer") -> UserOut:
        email = email.strip().lower()
        if self.database[self.collection].find_one({"email": email}):
            raise DuplicateEmail()
        user = User(
            name=name,
            email=email,
            phone=phone,
            password_hash=hash_password(password),
            role=role,
        )
        try:
            user_id = self.database.create_document(self.collection, user)
        except DuplicateKeyError:
            # another registration won the race between the check and the insert
            raise DuplicateEmail()
        logger.info("Registered user %s", email)
        return UserOut(id=user_id, name=name, email=email, phone=phone, role=role)

    def authenticate(self, email: str, password: str) -> UserOut:
        user = self.database[self.collection].find_one({"email": email.strip().lower()})
        if not user:
            dummy_verify()
            raise NotFound("User not found")
        if not verify_password(password, user.get("password_hash", "")):
            raise InvalidCredentials()
        return _user_out(user)

    def get_by_id(self, user_id: str) -> UserOut:
        user = self.database[self.collection].find_one(
            {"_id": _object_id(user_id)}, {"password_hash": 0}
        )
        if not user:
            raise NotFound("User not found")
        return _user_out(user)

    def find_owners(self, user_ids: Iterable[str]) -> Dict[str, OwnerOut]:
        oids = []
        for user_id in set(user_ids):
            try:
                oids.append(ObjectId(user_id))
            except (InvalidId, TypeError):
                continue
        if not oids:
            return {}
        docs = self.database[self.collection].find(
            {"_id": {"$in": oids}}, {"name": 1, "email": 1, "phone": 1}
        )
        return {
            str(d["_id"]): OwnerOut(name=d.get("name"), email=d.get("email"), phone=d.get("phone"))
            for d in docs
        }

    def ensure_admin(self, email: str, password: str, name: str = "Administrator") -> UserOut:
        email = email.strip().lower()
        existing = self.database[self.collection].find_one({"email": email})
        if existing is None:
            logger.info("Creating admin account %s", email)
            return self.register(name, email, "", password, role="admin")
        # Registration does not prove ownership of the address, so the
        # configured password always replaces whatever the account had.
        if existing.get("role") != "admin" or not verify_password(password, existing.get("password_hash", "")):
            password_hash = hash_password(password)
            self.database[self.collection].update_one(
                {"_id": existing["_id"]},
                {"$set": {
                    "role": "admin",
                    "password_hash": password_hash,
                    "updated_at": datetime.now(timezone.utc),
                }},
            )
            if existing.get("role") != "admin":
                logger.warning("Promoted existing account %s to admin and reset its password", email)
            else:
                logger.info("Reset admin password for %s", email)
            existing["role"] = "admin"
            existing["password_hash"] = password_hash
        return _user_out(existing)


class CatalogStore:
    collection = "product"

    def __init__(self, database: Database):
        self.database = database

    def seed(self, items: Optional[List[dict]] = None) -> List[ProductOut]:
        """
        Replace the whole catalog with ``items`` (the built-in list by default).

        Not atomic: a concurrent listing may see an empty catalog between the
        delete and the insert.
        """
        products = [Product(**item) for item in (SEED_PRODUCTS if items is None else items)]
        coll = self.database[self.collection]
        deleted = coll.delete_many({}).deleted_count
        out = []
        for product in products:
            product_id = self.database.create_document(self.collection, product)
            out.append(ProductOut(id=product_id, **product.model_dump()))
        logger.info("Seeded catalog: removed %d, inserted %d products", deleted, len(out))
        return out

    def list_all(self) -> List[ProductOut]:
        return [ProductOut(**serialize(d)) for d in self.database.get_documents(self.collection)]


class OrderStore:
    collection = "order"

    def __init__(self, database: Database, clock: Optional[Callable[[], datetime]] = None):
        self.database = database
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def create(
        self,
        owner_user_id: Optional[str],
        items: List[OrderItem],
        customer: CustomerSnapshot,
        status: str = DEFAULT_ORDER_STATUS,
    ) -> OrderOut:
        if not items:
            raise EmptyCart()
        total = round(sum(item.price * item.quantity for item in items), 2)
        created_at = self.clock()
        # BSON dates hold milliseconds; keep the returned order identical to the stored one
        created_at = created_at.replace(microsecond=created_at.microsecond // 1000 * 1000)
        order = Order(
            owner_user_id=owner_user_id,
            items=items,
            customer=customer,
            status=status,
            total=total,
            created_at=created_at,
        )
        order_id = self.database.create_document(self.collection, order)
        logger.info("Created order %s (%d items)", order_id, len(items))
        return OrderOut(id=order_id, **order.model_dump())

    def list_all(self) -> List[OrderOut]:
        docs = self.database.get_documents(self.collection, sort=NEWEST_FIRST)
        return [OrderOut(**serialize(d)) for d in docs]

    def list_all_with_owner(self, credentials: CredentialStore) -> List[OrderOut]:
        orders = self.list_all()
        owners = credentials.find_owners(o.owner_user_id for o in orders if o.owner_user_id)
        for order in orders:
            if order.owner_user_id:
                order.owner = owners.get(order.owner_user_id)
        return orders
