# Overview: Flask API routes for the product catalog; listing, search and spreadsheet upload.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_capability
from ..errors import error_response, SERVICE_ERRORS
from ..permissions import can_upload_products
from ..services import import_service, products_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    products = products_service.list_products(request.args.get("q"))
    return jsonify({"products": [p.to_dict() for p in products], "count": len(products)})


@products_bp.post("/upload")
@require_auth
@require_capability(can_upload_products, "UPLOAD_PRODUCTS")
def upload_products_route():
    """
    Replace the whole catalog from an .xlsx/.xlsm upload (multipart field "file").

    Columns: Product Code, Description, Cost Price, Sale Price.
    """
    if "file" not in request.files:
        return jsonify({"error": "file is required", "message": "file is required"}), 400

    file = request.files["file"]
    try:
        records = import_service.parse_product_workbook(
            file.stream,
            file.filename,
            max_rows=current_app.config.get("MAX_UPLOAD_ROWS"),
        )
        count = products_service.replace_catalog(g.context, records)
    except SERVICE_ERRORS as e:
        return error_response(e)

    return jsonify({"imported": count, "message": f"Uploaded {count} products"})
