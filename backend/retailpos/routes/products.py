# Overview: Flask API routes for the product catalog, brands and categories.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import products_service
from ..errors import BusinessError, internal_error_response
from ..decorators import require_auth, require_role

products_bp = Blueprint("products", __name__, url_prefix="/api")


@products_bp.get("/products")
@require_auth
def list_products_route():
    try:
        result = products_service.list_products(
            search=request.args.get("search"),
            status=request.args.get("status", "ACTIVE") or None,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to list products")
        return internal_error_response()


@products_bp.get("/pos/products")
@require_auth
def pos_products_route():
    """Active products with carton eligibility and stock split into cartons + pcs."""
    try:
        result = products_service.list_products(
            search=request.args.get("search"),
            status="ACTIVE",
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
            serialize=products_service.pos_product_dict,
        )
        return jsonify(result), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to list POS products")
        return internal_error_response()


@products_bp.get("/products/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return jsonify(products_service.get_product(product_id).to_dict()), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to get product")
        return internal_error_response()


@products_bp.get("/products/barcode/<string:barcode>")
@require_auth
def get_product_by_barcode_route(barcode: str):
    try:
        product = products_service.get_product_by_barcode(barcode)
        return jsonify(products_service.pos_product_dict(product)), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to look up barcode")
        return internal_error_response()


@products_bp.post("/products")
@require_auth
@require_role("admin", "supervisor")
def create_product_route():
    try:
        product = products_service.create_product(request.get_json(silent=True))
        return jsonify(product.to_dict()), 201
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to create product")
        return internal_error_response()


@products_bp.patch("/products/<int:product_id>")
@require_auth
@require_role("admin", "supervisor")
def update_product_route(product_id: int):
    try:
        product = products_service.update_product(product_id, request.get_json(silent=True))
        return jsonify(product.to_dict()), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to update product")
        return internal_error_response()



@products_bp.get("/products/<int:product_id>/delete-info")
@require_auth
@require_role("admin", "supervisor")
def product_delete_info_route(product_id: int):
    try:
        return jsonify(products_service.get_delete_info(product_id)), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to build product delete info")
        return internal_error_response()


@products_bp.delete("/products/<int:product_id>")
@require_auth
@require_role("admin", "supervisor")
def delete_product_route(product_id: int):
    """?mode=soft (default) deactivates; ?mode=hard removes the row (admin only)."""
    try:
        result = products_service.delete_product(
            product_id, request.args.get("mode", "soft"), actor=g.current_user
        )
        current_app.logger.info(
            "Product %s deleted (%s) by user %s", product_id, result["mode"], g.current_user.id
        )
        return jsonify(result), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return internal_error_response()


@products_bp.get("/brands")
@require_auth
def list_brands_route():
    return jsonify({"items": [b.to_dict() for b in products_service.list_brands()]}), 200


@products_bp.post("/brands")
@require_auth
@require_role("admin", "supervisor")
def create_brand_route():
    try:
        data = request.get_json(silent=True) or {}
        return jsonify(products_service.create_brand(data.get("name")).to_dict()), 201
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to create brand")
        return internal_error_response()


@products_bp.get("/categories")
@require_auth
def list_categories_route():
    return jsonify({"items": [c.to_dict() for c in products_service.list_categories()]}), 200


@products_bp.post("/categories")
@require_auth
@require_role("admin", "supervisor")
def create_category_route():
    try:
        data = request.get_json(silent=True) or {}
        return jsonify(products_service.create_category(data.get("name")).to_dict()), 201
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to create category")
        return internal_error_response()


@products_bp.patch("/brands/<int:brand_id>")
@require_auth
@require_role("admin", "supervisor")
def update_brand_route(brand_id: int):
    try:
        brand = products_service.update_brand(brand_id, request.get_json(silent=True))
        return jsonify(brand.to_dict()), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to update brand")
        return internal_error_response()


@products_bp.patch("/brands/<int:brand_id>/status")
@require_auth
@require_role("admin", "supervisor")
def brand_status_route(brand_id: int):
    try:
        data = request.get_json(silent=True) or {}
        brand = products_service.set_brand_status(brand_id, data.get("status"))
        return jsonify(brand.to_dict()), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to change brand status")
        return internal_error_response()


@products_bp.patch("/categories/<int:category_id>")
@require_auth
@require_role("admin", "supervisor")
def update_category_route(category_id: int):
    try:
        category = products_service.update_category(category_id, request.get_json(silent=True))
        return jsonify(category.to_dict()), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to update category")
        return internal_error_response()


@products_bp.patch("/categories/<int:category_id>/status")
@require_auth
@require_role("admin", "supervisor")
def category_status_route(category_id: int):
    try:
        data = request.get_json(silent=True) or {}
        category = products_service.set_category_status(category_id, data.get("status"))
        return jsonify(category.to_dict()), 200
    except BusinessError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Failed to change category status")
        return internal_error_response()
