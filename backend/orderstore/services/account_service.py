from typing import Iterable, Optional

from sqlalchemy.orm import Session

from orderstore.errors import NotFoundError, ValidationError
from orderstore.models.user import Address, Role, User, UserRole
from orderstore.utils.logging import get_logger
from orderstore.utils.transactions import integrity_guard, smart_transaction

log = get_logger("orderstore.accounts", "ACCOUNTS")

ADDRESS_KINDS = ("shipping", "billing")


class AccountService:
    """Users, their roles and their address book."""

    def __init__(self, db: Session):
        self.db = db

    # ---- users & roles

    def get_user(self, user_id: int) -> User:
        u = self.db.get(User, user_id)
        if not u:
            raise NotFoundError("User", user_id)
        return u

    def _role(self, role_name: str) -> Role:
        r = self.db.query(Role).filter(Role.role_name == role_name).first()
        if not r:
            raise NotFoundError("Role", role_name)
        return r

    def create_user(
        self,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
        roles: Iterable[str] = ("customer",),
    ) -> User:
        if not email or "@" not in email:
            raise ValidationError(f"Invalid email: {email!r}")
        if not password_hash:
            raise ValidationError("password_hash is required")
        with integrity_guard("create user"), smart_transaction(self.db):
            u = User(
                email=email,
                password_hash=password_hash,
                first_name=first_name,
                last_name=last_name,
                phone=phone,
            )
            self.db.add(u)
            self.db.flush()
            for name in roles:
                u.role_links.append(UserRole(role=self._role(name)))
            self.db.flush()
        return u

    def assign_role(self, user_id: int, role_name: str) -> User:
        with integrity_guard("assign role"), smart_transaction(self.db):
            u = self.get_user(user_id)
            role = self._role(role_name)
            if role_name not in u.role_names:
                u.role_links.append(UserRole(role=role))
                self.db.flush()
        return u

    def create_role(self, role_name: str) -> Role:
        with integrity_guard("create role"), smart_transaction(self.db):
            r = Role(role_name=role_name)
            self.db.add(r)
            self.db.flush()
        return r

    def delete_role(self, role_name: str):
        """Fails with IntegrityError while any user still holds the role."""
        with integrity_guard(f"delete role {role_name}"), smart_transaction(self.db):
            self.db.delete(self._role(role_name))
            self.db.flush()
        log.info(f"deleted role {role_name}")

    def deactivate_user(self, user_id: int) -> User:
        with smart_transaction(self.db):
            u = self.get_user(user_id)
            u.is_active = False
            self.db.flush()
        return u

    def delete_user(self, user_id: int):
        """Orders survive with a null user; carts, roles and addresses go with the user."""
        with integrity_guard("delete user"), smart_transaction(self.db):
            self.db.delete(self.get_user(user_id))
            self.db.flush()
        log.info(f"deleted user {user_id}")

    # ---- addresses

    def add_address(
        self,
        user_id: int,
        line1: str,
        city: str,
        country: str,
        label: Optional[str] = None,
        line2: Optional[str] = None,
        state: Optional[str] = None,
        postal_code: Optional[str] = None,
        phone: Optional[str] = None,
        default_shipping: bool = False,
        default_billing: bool = False,
    ) -> Address:
        if not line1 or not city or not country:
            raise ValidationError("line1, city and country are required")
        with integrity_guard("add address"), smart_transaction(self.db):
            self.get_user(user_id)
            addr = Address(
                user_id=user_id,
                label=label,
                line1=line1,
                line2=line2,
                city=city,
                state=state,
                postal_code=postal_code,
                country=country,
                phone=phone,
            )
            self.db.add(addr)
            self.db.flush()
            if default_shipping:
                self._make_default(addr, "shipping")
            if default_billing:
                self._make_default(addr, "billing")
        return addr

    def _make_default(self, addr: Address, kind: str):
        column = Address.is_default_shipping if kind == "shipping" else Address.is_default_billing
        # clear the old default first, in the same transaction
        self.db.query(Address).filter(
            Address.user_id == addr.user_id, Address.id != addr.id, column == True  # noqa: E712
        ).update({column: False}, synchronize_session=False)
        setattr(addr, column.key, True)
        self.db.flush()

    def set_default_address(self, address_id: int, kind: str) -> Address:
        if kind not in ADDRESS_KINDS:
            raise ValidationError(f"Unknown address kind: {kind}")
        with smart_transaction(self.db):
            addr = self.db.get(Address, address_id)
            if not addr:
                raise NotFoundError("Address", address_id)
            self._make_default(addr, kind)
        self.db.expire_all()
        return addr

    def default_address(self, user_id: int, kind: str) -> Optional[Address]:
        if kind not in ADDRESS_KINDS:
            raise ValidationError(f"Unknown address kind: {kind}")
        column = Address.is_default_shipping if kind == "shipping" else Address.is_default_billing
        return (
            self.db.query(Address)
            .filter(Address.user_id == user_id, column == True)  # noqa: E712
            .first()
        )

    def delete_address(self, address_id: int):
        """Orders that used the address keep their row with a null reference."""
        with integrity_guard("delete address"), smart_transaction(self.db):
            addr = self.db.get(Address, address_id)
            if not addr:
                raise NotFoundError("Address", address_id)
            self.db.delete(addr)
            self.db.flush()
