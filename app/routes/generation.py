"""
Routes génération assistée
==========================

Accès à la passerelle de génération (catégories, produits, logo, matériaux,
factures). Chaque opération répond toujours; en cas d'échec du fournisseur la
valeur de repli est retournée et 'fallback' vaut true.
"""

import logging

from flask import Blueprint

from app import limiter
from app.models import BrandType, CollectionName
from app.utils.decorators import user_required
from app.utils.helpers import (
    api_response, error_response, get_data_context, get_generation_gateway, get_json_body
)

generation_bp = Blueprint('generation', __name__)
logger = logging.getLogger(__name__)

generation_limit = limiter.limit("30 per minute", error_message="Trop de générations. Réessayez plus tard.")


def _missing(data, *fields):
    return {f: 'Champ requis' for f in fields if not data.get(f)}


def _respond(payload, empty):
    gateway = get_generation_gateway()
    return api_response(True, data={**payload, 'fallback': empty, 'enabled': gateway.enabled})


@generation_bp.route('/categories', methods=['POST'])
@user_required
@generation_limit
def generate_categories():
    """Body: storeName, description"""
    data = get_json_body()
    errors = _missing(data, 'storeName')
    if errors:
        return error_response('VALIDATION_ERROR', 'Nom du magasin requis', 400, errors)

    categories = get_generation_gateway().generate_categories(data['storeName'], data.get('description', ''))
    return _respond({'categories': [c.to_dict() for c in categories]}, not categories)


@generation_bp.route('/products', methods=['POST'])
@user_required
@generation_limit
def generate_products():
    """
    Body: storeName, storeDescription, categoryName

    Les noms des produits déjà présents dans le catalogue sont exclus.
    """
    data = get_json_body()
    errors = _missing(data, 'storeName', 'categoryName')
    if errors:
        return error_response('VALIDATION_ERROR', 'Champs requis manquants', 400, errors)

    existing = [p.get('name') for p in get_data_context().list(CollectionName.PRODUCTS.value)]
    products = get_generation_gateway().generate_products(
        data['storeName'], data.get('storeDescription', ''), data['categoryName'], existing
    )
    return _respond({'products': [p.to_dict() for p in products]}, not products)


@generation_bp.route('/product-details', methods=['POST'])
@user_required
@generation_limit
def generate_product_details():
    """Body: productName, categoryName, feature (description | price)"""
    data = get_json_body()
    errors = _missing(data, 'productName', 'feature')
    if data.get('feature') and data['feature'] not in ('description', 'price'):
        errors['feature'] = "Valeurs acceptées: description, price"
    if errors:
        return error_response('VALIDATION_ERROR', 'Champs invalides', 400, errors)

    details = get_generation_gateway().generate_product_details(
        data['productName'], data.get('categoryName', ''), data['feature']
    )
    return _respond(details, details.get(data['feature']) is None)


@generation_bp.route('/product-from-idea', methods=['POST'])
@user_required
@generation_limit
def generate_product_from_idea():
    """Body: productIdea, categoryName, storeId, subCategoryId"""
    data = get_json_body()
    errors = _missing(data, 'productIdea')
    if errors:
        return error_response('VALIDATION_ERROR', 'Idée de produit requise', 400, errors)

    product = get_generation_gateway().generate_product_from_idea(
        data['productIdea'], data.get('categoryName', ''),
        store_id=data.get('storeId'), sub_category_id=data.get('subCategoryId')
    )
    return _respond({'product': product.to_dict() if product else None}, product is None)


@generation_bp.route('/logo-prompts', methods=['POST'])
@user_required
@generation_limit
def generate_logo_prompts():
    """Body: storeName, description"""
    data = get_json_body()
    errors = _missing(data, 'storeName')
    if errors:
        return error_response('VALIDATION_ERROR', 'Nom du magasin requis', 400, errors)

    prompts = get_generation_gateway().generate_logo_prompts(data['storeName'], data.get('description', ''))
    return _respond({'prompts': prompts}, not prompts)


@generation_bp.route('/logo', methods=['POST'])
@user_required
@generation_limit
def generate_logo():
    """Body: prompt, storeName"""
    data = get_json_body()
    errors = _missing(data, 'prompt')
    if errors:
        return error_response('VALIDATION_ERROR', 'Prompt requis', 400, errors)

    gateway = get_generation_gateway()
    logo_url = gateway.generate_logo(data['prompt'], data.get('storeName', ''))
    return _respond({'logoUrl': logo_url}, logo_url == gateway.placeholder_logo_url)


@generation_bp.route('/materials', methods=['POST'])
@user_required
@generation_limit
def extract_materials():
    """
    Body: fileDataUri ou textInput, brandType (k-plus | miscellaneous, optionnel)

    Les matériaux sont rapprochés des produits du catalogue de l'utilisateur.
    """
    data = get_json_body()
    if not data.get('fileDataUri') and not data.get('textInput'):
        return error_response('VALIDATION_ERROR', 'Fichier ou texte requis', 400,
                              {'fileDataUri': 'Champ requis', 'textInput': 'Champ requis'})
    brand_type = data.get('brandType')
    if brand_type and brand_type not in BrandType.values():
        return error_response('VALIDATION_ERROR', 'Marque inconnue', 400,
                              {'brandType': f"Valeurs acceptées: {', '.join(BrandType.values())}"})

    products = get_data_context().list(CollectionName.PRODUCTS.value)
    materials = get_generation_gateway().extract_materials(
        products, file_data_uri=data.get('fileDataUri'), text_input=data.get('textInput'), brand_type=brand_type
    )
    return _respond({'materials': [m.to_dict() for m in materials]}, not materials)


@generation_bp.route('/invoice-description', methods=['POST'])
@user_required
@generation_limit
def generate_invoice_description():
    """Body: products [{name, quantity}]"""
    data = get_json_body()
    products = data.get('products') or []
    if not isinstance(products, list) or not products:
        return error_response('VALIDATION_ERROR', 'Lignes de facture requises', 400, {'products': 'Champ requis'})

    description = get_generation_gateway().generate_invoice_description(products)
    return _respond({'description': description}, not description)


@generation_bp.route('/discounts', methods=['POST'])
@user_required
@generation_limit
def suggest_discounts():
    """Body: customerId, products [{productId, quantity, price}], customerPurchaseHistory, currentPromotions"""
    data = get_json_body()
    errors = _missing(data, 'customerId')
    if errors:
        return error_response('VALIDATION_ERROR', 'Client requis', 400, errors)

    suggestions = get_generation_gateway().suggest_discounts(
        data['customerId'],
        data.get('products') or [],
        customer_purchase_history=data.get('customerPurchaseHistory', ''),
        current_promotions=data.get('currentPromotions') or [],
    )
    return _respond({'suggestedDiscounts': [s.to_dict() for s in suggestions]}, not suggestions)
