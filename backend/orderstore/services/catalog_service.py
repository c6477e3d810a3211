from typing import Optional

from sqlalchemy.orm import Session

from orderstore.errors import NotFoundError, ValidationError
from orderstore.models.inventory import Inventory
from orderstore.models.product import (
    Category,
    Product,
    ProductCategory,
    ProductImage,
    ProductSupplier,
    ProductTag,
    Review,
    Supplier,
    Tag,
)
from orderstore.repositories.product_repo import ProductRepository
from orderstore.utils.logging import get_logger
from orderstore.utils.money import to_money
from orderstore.utils.transactions import integrity_guard, smart_transaction

log = get_logger("orderstore.catalog", "CATALOG")

PRODUCT_FIELDS = ("name", "description", "price", "weight_kg", "is_active")


def _price(value, name="price"):
    try:
        amount = to_money(value)
    except ValueError as e:
        raise ValidationError(str(e))
    if amount < 0:
        raise ValidationError(f"{name} must be >= 0")
    return amount


class CatalogService:
    """
    Catalog writes the order core depends on: products with their inventory
    record, and the category/tag/supplier/image links around them.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = ProductRepository(db)

    def get_product(self, product_id: int) -> Product:
        p = self.repo.get(product_id)
        if not p:
            raise NotFoundError("Product", product_id)
        return p

    def create_product(
        self,
        sku: str,
        name: str,
        price,
        stock: Optional[int] = None,
        description: Optional[str] = None,
        weight_kg=None,
        reorder_threshold: int = 0,
    ) -> Product:
        if not sku or not name:
            raise ValidationError("sku and name are required")
        price = _price(price)
        if stock is not None and stock < 0:
            raise ValidationError("stock must be >= 0")
        with integrity_guard(f"create product {sku}"), smart_transaction(self.db):
            p = Product(
                sku=sku,
                name=name,
                price=price,
                description=description,
                weight_kg=weight_kg,
            )
            self.db.add(p)
            self.db.flush()
            if stock is not None:
                self.db.add(
                    Inventory(
                        product_id=p.id,
                        quantity=stock,
                        reserved=0,
                        reorder_threshold=reorder_threshold,
                    )
                )
                self.db.flush()
        return p

    def update_product(self, product_id: int, **changes) -> Product:
        """Edit catalog data. Order item snapshots are separate rows and stay as they were."""
        unknown = set(changes) - set(PRODUCT_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown product fields: {sorted(unknown)}")
        if "price" in changes:
            changes["price"] = _price(changes["price"])
        with integrity_guard("update product"), smart_transaction(self.db):
            p = self.get_product(product_id)
            for k, v in changes.items():
                setattr(p, k, v)
            self.db.flush()
        return p

    def deactivate_product(self, product_id: int) -> Product:
        return self.update_product(product_id, is_active=False)

    def delete_product(self, product_id: int):
        """Fails with IntegrityError while cart or order items reference the product."""
        with integrity_guard(f"delete product {product_id}"), smart_transaction(self.db):
            self.db.delete(self.get_product(product_id))
            self.db.flush()
        log.info(f"deleted product {product_id}")

    # ---- categories

    def create_category(
        self,
        name: str,
        slug: str,
        parent_id: Optional[int] = None,
        description: Optional[str] = None,
    ) -> Category:
        with integrity_guard("create category"), smart_transaction(self.db):
            if parent_id is not None and not self.db.get(Category, parent_id):
                raise NotFoundError("Category", parent_id)
            c = Category(
                name=name, slug=slug, parent_category_id=parent_id, description=description
            )
            self.db.add(c)
            self.db.flush()
        return c

    def add_to_category(self, product_id: int, category_id: int) -> ProductCategory:
        with integrity_guard("link category"), smart_transaction(self.db):
            self.get_product(product_id)
            if not self.db.get(Category, category_id):
                raise NotFoundError("Category", category_id)
            link = ProductCategory(product_id=product_id, category_id=category_id)
            self.db.add(link)
            self.db.flush()
        return link

    def delete_category(self, category_id: int):
        """Product links go with the category; child categories lose their parent."""
        with integrity_guard("delete category"), smart_transaction(self.db):
            c = self.db.get(Category, category_id)
            if not c:
                raise NotFoundError("Category", category_id)
            self.db.delete(c)
            self.db.flush()

    # ---- tags & images

    def tag_product(self, product_id: int, tag_name: str) -> Tag:
        with integrity_guard("tag product"), smart_transaction(self.db):
            self.get_product(product_id)
            tag = self.db.query(Tag).filter(Tag.tag_name == tag_name).first()
            if not tag:
                tag = Tag(tag_name=tag_name)
                self.db.add(tag)
                self.db.flush()
            if not self.db.get(ProductTag, (product_id, tag.id)):
                self.db.add(ProductTag(product_id=product_id, tag_id=tag.id))
                self.db.flush()
        return tag

    def add_image(
        self,
        product_id: int,
        url: str,
        alt_text: Optional[str] = None,
        sort_order: int = 0,
        is_primary: bool = False,
    ) -> ProductImage:
        with smart_transaction(self.db):
            p = self.get_product(product_id)
            if is_primary:
                for img in p.images:
                    img.is_primary = False
            img = ProductImage(
                url=url, alt_text=alt_text, sort_order=sort_order, is_primary=is_primary
            )
            p.images.append(img)
            self.db.flush()
        return img

    # ---- suppliers

    def create_supplier(
        self, name: str, contact_email: Optional[str] = None, contact_phone: Optional[str] = None
    ) -> Supplier:
        with integrity_guard("create supplier"), smart_transaction(self.db):
            s = Supplier(name=name, contact_email=contact_email, contact_phone=contact_phone)
            self.db.add(s)
            self.db.flush()
        return s

    def link_supplier(
        self,
        product_id: int,
        supplier_id: int,
        cost_price=0,
        supplier_sku: Optional[str] = None,
        lead_time_days: int = 0,
    ) -> ProductSupplier:
        cost_price = _price(cost_price, "cost_price")
        with integrity_guard("link supplier"), smart_transaction(self.db):
            self.get_product(product_id)
            if not self.db.get(Supplier, supplier_id):
                raise NotFoundError("Supplier", supplier_id)
            link = ProductSupplier(
                product_id=product_id,
                supplier_id=supplier_id,
                cost_price=cost_price,
                supplier_sku=supplier_sku,
                lead_time_days=lead_time_days,
            )
            self.db.add(link)
            self.db.flush()
        return link

    def delete_supplier(self, supplier_id: int):
        """Fails with IntegrityError while any product is still sourced from it."""
        with integrity_guard(f"delete supplier {supplier_id}"), smart_transaction(self.db):
            s = self.db.get(Supplier, supplier_id)
            if not s:
                raise NotFoundError("Supplier", supplier_id)
            self.db.delete(s)
            self.db.flush()

    # ---- reviews

    def add_review(
        self,
        product_id: int,
        rating: int,
        user_id: Optional[int] = None,
        title: Optional[str] = None,
        body: Optional[str] = None,
    ) -> Review:
        if not 1 <= rating <= 5:
            raise ValidationError("rating must be between 1 and 5")
        with integrity_guard("add review"), smart_transaction(self.db):
            self.get_product(product_id)
            r = Review(product_id=product_id, user_id=user_id, rating=rating, title=title, body=body)
            self.db.add(r)
            self.db.flush()
        return r
