"""Products and categories."""
import logging
from typing import Any, Dict, Iterable, List

from bson import ObjectId
from pymongo.database import Database

from database import create_document, get_documents, now, parse_object_id, serialize
from errors import Conflict, NotFound
from schemas import Category, CategoryIn, CategoryUpdate, Product, ProductIn, ProductUpdate

logger = logging.getLogger(__name__)


class CatalogService:
    def __init__(self, db: Database):
        self.db = db

    # Categories

    def list_categories(self) -> List[Dict[str, Any]]:
        return [serialize(c) for c in get_documents(self.db, "category", newest_first=False)]

    def _check_category_slug(self, slug: str, exclude=None) -> None:
        query: Dict[str, Any] = {"slug": slug}
        if exclude is not None:
            query["_id"] = {"$ne": exclude}
        if self.db["category"].find_one(query):
            raise Conflict(f"Category slug already in use: {slug}")

    def create_category(self, payload: CategoryIn) -> Dict[str, Any]:
        data = Category(**payload.model_dump()).model_dump()
        data["slug"] = data["slug"].lower()
        self._check_category_slug(data["slug"])
        cid = create_document(self.db, "category", data)
        return serialize(self.db["category"].find_one({"_id": cid}))

    def update_category(self, category_id: str, payload: CategoryUpdate) -> Dict[str, Any]:
        oid = parse_object_id(category_id, "category id")
        updates = payload.model_dump(exclude_unset=True)
        if updates.get("slug"):
            updates["slug"] = updates["slug"].lower()
            self._check_category_slug(updates["slug"], exclude=oid)
        updates["updated_at"] = now()
        result = self.db["category"].update_one({"_id": oid}, {"$set": updates})
        if result.matched_count == 0:
            raise NotFound("Category", category_id)
        return serialize(self.db["category"].find_one({"_id": oid}))

    def delete_category(self, category_id: str) -> None:
        oid = parse_object_id(category_id, "category id")
        if self.db["category"].delete_one({"_id": oid}).deleted_count == 0:
            raise NotFound("Category", category_id)

    # Products

    def _resolve_categories(self, ids: Iterable[str]) -> List[ObjectId]:
        oids = [parse_object_id(i, "category id") for i in ids]
        if oids:
            found = self.db["category"].count_documents({"_id": {"$in": oids}})
            if found != len(set(oids)):
                raise NotFound("Category", "one or more categories do not exist")
        return oids

    def _check_product_slug(self, slug: str, exclude=None) -> None:
        query: Dict[str, Any] = {"slug": slug}
        if exclude is not None:
            query["_id"] = {"$ne": exclude}
        if self.db["product"].find_one(query):
            raise Conflict(f"Product slug already in use: {slug}")

    def _with_categories(self, products: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ids = {cid for p in products for cid in p.get("categories", [])}
        lookup = {}
        if ids:
            for c in self.db["category"].find({"_id": {"$in": list(ids)}}, {"name": 1, "slug": 1}):
                lookup[c["_id"]] = c
        out = []
        for p in products:
            doc = serialize(p)
            doc["categories"] = [serialize(lookup[c]) for c in p.get("categories", []) if c in lookup]
            out.append(doc)
        return out

    def list_products(self, include_inactive: bool = False) -> List[Dict[str, Any]]:
        query = {} if include_inactive else {"is_active": True}
        return self._with_categories(get_documents(self.db, "product", query))

    def get_product(self, product_id: Any) -> Dict[str, Any]:
        product = self.db["product"].find_one({"_id": parse_object_id(product_id, "product id")})
        if not product:
            raise NotFound("Product", product_id)
        return product

    def create_product(self, payload: ProductIn) -> Dict[str, Any]:
        data = payload.model_dump()
        data["slug"] = data["slug"].lower()
        data["categories"] = self._resolve_categories(payload.categories)
        self._check_product_slug(data["slug"])
        data = Product(**data).model_dump()
        pid = create_document(self.db, "product", data)
        logger.info("Created product %s (%s)", pid, data["slug"])
        return self._with_categories([self.db["product"].find_one({"_id": pid})])[0]

    def update_product(self, product_id: str, payload: ProductUpdate) -> Dict[str, Any]:
        oid = parse_object_id(product_id, "product id")
        updates = payload.model_dump(exclude_unset=True)
        if updates.get("slug"):
            updates["slug"] = updates["slug"].lower()
            self._check_product_slug(updates["slug"], exclude=oid)
        if "categories" in updates:
            updates["categories"] = self._resolve_categories(updates["categories"] or [])
        updates["updated_at"] = now()
        result = self.db["product"].update_one({"_id": oid}, {"$set": updates})
        if result.matched_count == 0:
            raise NotFound("Product", product_id)
        return self._with_categories([self.db["product"].find_one({"_id": oid})])[0]

    def delete_product(self, product_id: str) -> None:
        oid = parse_object_id(product_id, "product id")
        if self.db["product"].delete_one({"_id": oid}).deleted_count == 0:
            raise NotFound("Product", product_id)
