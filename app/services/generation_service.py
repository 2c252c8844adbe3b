"""
Service de Génération - Suggestions assistées par modèle
========================================================

Passerelle vers un fournisseur de génération (texte JSON et image):
- Catégories et sous-catégories pour un magasin
- Produits pour une catégorie, détails d'un produit, produit à partir d'une idée
- Prompts de logo et génération du logo
- Extraction d'une liste de matériaux (fichier ou texte) rapprochée du catalogue
- Description de facture, suggestions de remises

La passerelle ne lève jamais d'exception vers l'appelant: tout échec du fournisseur
(réseau, réponse invalide, clé absente) est journalisé et remplacé par une valeur
de repli (liste vide, None, image par défaut).

Usage:
    gateway = GenerationGateway(GeminiProvider(api_key='...'))
    categories = gateway.generate_categories('دکوربند', 'مصالح سقف کاذب')
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests

from app.models import BrandType
from app.models.records import is_number

logger = logging.getLogger(__name__)

LOGO_PROMPT_TEMPLATE = (
    "A simple, modern, minimalist vector logo of [ELEMENT]. Flat 2d icon. "
    "Isolated on a solid plain white background. NO text, NO letters, NO shadows, "
    "NO gradients, NO 3d rendering."
)
LOGO_SUFFIX = (
    ", logo, minimalist, vector, flat icon, 2d, isolated on white background, simple. "
    "NO text, NO letters, NO shadows, NO gradients, NO 3d rendering."
)
LOGO_PROMPT_COUNT = 5
PRODUCT_BATCH_SIZE = 5
MAX_CATEGORIES = 10
K_PLUS_MARKER = 'کی پلاس'

_DATA_URI = re.compile(r'^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.+)$', re.DOTALL)


@dataclass
class MediaPart:
    """Fichier joint à une requête (image, PDF, texte)"""
    mime_type: str
    data: str  # base64

    @classmethod
    def from_data_uri(cls, uri: str) -> 'MediaPart':
        match = _DATA_URI.match(uri or '')
        if not match:
            raise ValueError("Data URI invalide (attendu: data:<mimetype>;base64,<données>)")
        return cls(mime_type=match.group('mime'), data=match.group('data'))


@dataclass
class CategorySuggestion:
    name: str
    sub_categories: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {'name': self.name, 'subCategories': self.sub_categories}


@dataclass
class ProductSuggestion:
    name: str
    description: str = ''
    price: Optional[float] = None
    image_url: Optional[str] = None
    store_id: Optional[str] = None
    sub_category_id: Optional[str] = None

    def to_dict(self) -> dict:
        result = {'name': self.name, 'description': self.description, 'price': self.price}
        if self.image_url:
            result['imageUrl'] = self.image_url
        if self.store_id:
            result['storeId'] = self.store_id
        if self.sub_category_id:
            result['subCategoryId'] = self.sub_category_id
        return result


@dataclass
class ExtractedMaterial:
    """Matériau extrait, rapproché d'un produit existant ou signalé comme nouveau"""
    is_new: bool
    product_id: str
    name: str
    quantity: float
    unit: str = ''

    def to_dict(self) -> dict:
        return {'isNew': self.is_new, 'productId': self.product_id, 'name': self.name,
                'quantity': self.quantity, 'unit': self.unit}


@dataclass
class DiscountSuggestion:
    discount_percentage: float
    reason: str
    product_id: Optional[str] = None
    promotion_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {'productId': self.product_id, 'promotionId': self.promotion_id,
                'discountPercentage': self.discount_percentage, 'reason': self.reason}


# ==================== Fournisseurs ====================

class GenerationProvider(ABC):
    """Interface d'un fournisseur de génération"""

    @abstractmethod
    def generate_json(self, prompt: str, media: Optional[MediaPart] = None) -> Any:
        """Retourne la réponse du modèle décodée depuis JSON"""
        pass

    @abstractmethod
    def generate_image(self, prompt: str) -> Optional[str]:
        """Retourne une image sous forme de data URI, ou None"""
        pass


class GeminiProvider(GenerationProvider):
    """
    Provider Google Gemini / Imagen (API REST Generative Language)

    Config:
        - api_key: Clé API
        - text_model: Modèle texte (ex: gemini-2.0-flash)
        - image_model: Modèle image (ex: imagen-3.0-generate-002)
        - timeout: Timeout HTTP en secondes
    """

    BASE_URL = 'https://generativelanguage.googleapis.com/v1beta'

    def __init__(self, api_key: str, text_model: str = 'gemini-2.0-flash',
                 image_model: str = 'imagen-3.0-generate-002', timeout: int = 60):
        if not api_key:
            raise ValueError("Gemini config requires: api_key")
        self.api_key = api_key
        self.text_model = text_model
        self.image_model = image_model
        self.timeout = timeout

    def _post(self, path: str, payload: dict) -> dict:
        response = requests.post(
            f'{self.BASE_URL}{path}',
            headers={'x-goog-api-key': self.api_key, 'Content-Type': 'application/json'},
            json=payload,
            timeout=self.timeout
        )
        response.raise_for_status()
        return response.json()

    def generate_json(self, prompt: str, media: Optional[MediaPart] = None) -> Any:
        parts = [{'text': prompt}]
        if media is not None:
            parts.append({'inline_data': {'mime_type': media.mime_type, 'data': media.data}})

        data = self._post(f'/models/{self.text_model}:generateContent', {
            'contents': [{'role': 'user', 'parts': parts}],
            'generationConfig': {'responseMimeType': 'application/json'},
        })
        candidates = data.get('candidates') or []
        if not candidates:
            raise ValueError('Réponse Gemini sans candidat')
        text = ''.join(p.get('text', '') for p in candidates[0].get('content', {}).get('parts', []))
        return json.loads(text)

    def generate_image(self, prompt: str) -> Optional[str]:
        data = self._post(f'/models/{self.image_model}:predict', {
            'instances': [{'prompt': prompt}],
            'parameters': {'sampleCount': 1},
        })
        predictions = data.get('predictions') or []
        if not predictions or not predictions[0].get('bytesBase64Encoded'):
            return None
        prediction = predictions[0]
        return f"data:{prediction.get('mimeType', 'image/png')};base64,{prediction['bytesBase64Encoded']}"


# ==================== Passerelle ====================

def _text(value, default: str = '') -> str:
    return value.strip() if isinstance(value, str) else default


class GenerationGateway:
    """
    Point d'entrée unique des opérations de génération

    Args:
        provider: Fournisseur (None: toutes les opérations renvoient leur repli)
        placeholder_logo_url: Image renvoyée quand la génération de logo échoue
    """

    def __init__(self, provider: Optional[GenerationProvider] = None,
                 placeholder_logo_url: str = 'https://placehold.co/512x512/png?text=Logo'):
        self.provider = provider
        self.placeholder_logo_url = placeholder_logo_url

    @classmethod
    def from_config(cls, config) -> 'GenerationGateway':
        provider = None
        if config.get('GENERATION_API_KEY'):
            provider = GeminiProvider(
                api_key=config['GENERATION_API_KEY'],
                text_model=config.get('GENERATION_TEXT_MODEL', 'gemini-2.0-flash'),
                image_model=config.get('GENERATION_IMAGE_MODEL', 'imagen-3.0-generate-002'),
                timeout=config.get('GENERATION_TIMEOUT', 60),
            )
        else:
            logger.info("GENERATION_API_KEY absente: génération désactivée (valeurs de repli)")
        return cls(provider, config.get('PLACEHOLDER_LOGO_URL') or 'https://placehold.co/512x512/png?text=Logo')

    @property
    def enabled(self) -> bool:
        return self.provider is not None

    def _run(self, operation: str, fallback: Any, call: Callable[[], Any]) -> Any:
        if self.provider is None:
            logger.warning(f"Génération '{operation}' indisponible: aucun fournisseur configuré")
            return fallback
        try:
            return call()
        except Exception as e:
            logger.warning(f"Génération '{operation}' échouée, valeur de repli utilisée: {e}")
            return fallback

    # ---------- Catalogue ----------

    def generate_categories(self, store_name: str, description: str) -> List[CategorySuggestion]:
        """Catégories (max 10) avec leurs sous-catégories (max 10), en persan"""
        prompt = (
            "You are an expert in business categorization and product management.\n"
            "Based on the following store name and description (in Persian), generate a structured "
            "list of relevant product categories and sub-categories in Persian.\n"
            f'Store Name: "{store_name}"\nDescription: "{description}"\n'
            f"Provide 2 to {MAX_CATEGORIES} main categories, each with 2 to {MAX_CATEGORIES} sub-categories.\n"
            'Answer with JSON: {"categories": [{"name": string, "subCategories": [string]}]}'
        )

        def call():
            data = self.provider.generate_json(prompt)
            suggestions = []
            for item in (data.get('categories') or [])[:MAX_CATEGORIES]:
                name = _text(item.get('name'))
                if not name:
                    continue
                subs = [_text(s) for s in (item.get('subCategories') or []) if _text(s)]
                suggestions.append(CategorySuggestion(name, subs[:MAX_CATEGORIES]))
            return suggestions

        return self._run('generate_categories', [], call)

    def generate_products(self, store_name: str, store_description: str, category_name: str,
                          existing_product_names: Optional[List[str]] = None) -> List[ProductSuggestion]:
        """Cinq produits nouveaux pour une catégorie (noms existants exclus)"""
        existing = [n for n in (existing_product_names or []) if n]
        excluded = '\n'.join(f'- {n}' for n in existing) or '(No existing products to exclude)'
        prompt = (
            "You are an expert product manager for the Iranian market.\n"
            f'Based on the store name "{store_name}", its description "{store_description}", and the '
            f'category "{category_name}", generate a list of {PRODUCT_BATCH_SIZE} diverse and relevant products.\n'
            "The product names and descriptions MUST be in professional Persian (Farsi).\n"
            "The price must be a reasonable estimate in Iranian Rials (IRR), as a number.\n"
            f"CRITICAL: Do NOT generate any of the following product names as they already exist:\n{excluded}\n"
            'Answer with JSON: {"products": [{"name": string, "description": string, "price": number}]}'
        )

        def call():
            data = self.provider.generate_json(prompt)
            known = {n.strip() for n in existing}
            products = []
            for item in data.get('products') or []:
                name = _text(item.get('name'))
                if not name or name in known:
                    continue
                known.add(name)
                price = item.get('price')
                products.append(ProductSuggestion(
                    name=name,
                    description=_text(item.get('description')),
                    price=round(price) if is_number(price) else None,
                ))
            return products[:PRODUCT_BATCH_SIZE]

        return self._run('generate_products', [], call)

    def generate_product_details(self, product_name: str, category_name: str, feature: str) -> Dict[str, Any]:
        """
        Description ou prix suggéré pour un produit

        Args:
            feature: 'description' ou 'price'

        Returns:
            dict: {'description': str|None, 'price': number|None}
        """
        fallback = {'description': None, 'price': None}
        prompt = (
            f"برای یک محصول در دسته‌بندی «{category_name}» با نام «{product_name}»، یک توضیح کوتاه و "
            "حرفه‌ای به زبان فارسی و یک قیمت پیشنهادی معقول به ریال ایران ارائه بده.\n"
            'Answer with JSON: {"description": string, "price": number}'
        )

        def call():
            data = self.provider.generate_json(prompt)
            if feature == 'description':
                return {'description': _text(data.get('description')) or None, 'price': None}
            price = data.get('price')
            return {'description': None, 'price': round(price) if is_number(price) else None}

        return self._run('generate_product_details', fallback, call)

    def generate_product_from_idea(self, product_idea: str, category_name: str,
                                  store_id: Optional[str] = None,
                                  sub_category_id: Optional[str] = None) -> Optional[ProductSuggestion]:
        """
        Produit complet (nom, description, prix, image) à partir d'une idée

        L'image générée est remplacée par une image de substitution si elle échoue.
        Retourne None si le texte ne peut pas être généré.
        """
        prompt = (
            f'Based on the product idea "{product_idea}" in the "{category_name}" category, generate a '
            "professional product name, description, and price in Persian. The price is in Iranian Rials.\n"
            'Answer with JSON: {"name": string, "description": string, "price": number}'
        )

        def call():
            data = self.provider.generate_json(prompt)
            name = _text(data.get('name'))
            if not name:
                raise ValueError('Nom de produit absent de la réponse')
            price = data.get('price')
            product = ProductSuggestion(
                name=name,
                description=_text(data.get('description')),
                price=round(price) if is_number(price) else None,
                store_id=store_id,
                sub_category_id=sub_category_id,
            )
            image_prompt = (
                f"یک عکس محصول حرفه‌ای و فوتورئالیستی از: «{name}». تصویر باید روی پس‌زمینه سفید ساده و "
                "تمیز باشد. از اضافه کردن هرگونه متن، لوگو یا واترمارک خودداری شود."
            )
            try:
                product.image_url = self.provider.generate_image(image_prompt)
            except Exception as e:
                logger.warning(f"Image produit non générée, image de substitution utilisée: {e}")
            if not product.image_url:
                seed = quote(f'{name} {category_name}')
                product.image_url = f'https://picsum.photos/seed/{seed}/400/300'
            return product

        return self._run('generate_product_from_idea', None, call)

    # ---------- Logo ----------

    def generate_logo_prompts(self, store_name: str, description: str) -> List[str]:
        """Cinq prompts de logo construits sur un gabarit fixe"""
        prompt = (
            "Based on the following store name and description (in Persian), generate "
            f"{LOGO_PROMPT_COUNT} distinct, simple, one-or-two-word visual elements that could be used in a logo.\n"
            "The elements must be in English. Focus on abstract concepts or key physical items from the "
            "description. Do NOT describe a scene or a landscape.\n"
            f'Store Name: "{store_name}"\nDescription (in Persian): "{description}"\n'
            'Answer with JSON: {"elements": [string]}'
        )

        def call():
            data = self.provider.generate_json(prompt)
            elements = [_text(e) for e in (data.get('elements') or []) if _text(e)]
            return [LOGO_PROMPT_TEMPLATE.replace('[ELEMENT]', e) for e in elements[:LOGO_PROMPT_COUNT]]

        return self._run('generate_logo_prompts', [], call)

    def generate_logo(self, prompt: str, store_name: str = '') -> str:
        """Image du logo (data URI), ou l'image par défaut en cas d'échec"""
        def call():
            image = self.provider.generate_image(f'{prompt}{LOGO_SUFFIX}')
            if not image:
                logger.warning(f"Aucun logo généré pour '{store_name}', image par défaut utilisée")
                return self.placeholder_logo_url
            return image

        return self._run('generate_logo', self.placeholder_logo_url, call)

    # ---------- Matériaux ----------

    def extract_materials(self, existing_products: List[dict], file_data_uri: Optional[str] = None,
                          text_input: Optional[str] = None,
                          brand_type: Optional[str] = None) -> List[ExtractedMaterial]:
        """
        Extrait une liste de matériaux et la rapproche des produits existants

        Args:
            existing_products: Produits du catalogue (id, name, unit)
            file_data_uri: Fichier (image, PDF, texte) en data URI
            text_input: Liste en texte libre (prioritaire sur le fichier)
            brand_type: 'k-plus' ou 'miscellaneous' (optionnel)

        Returns:
            list: Matériaux extraits (vide en cas d'échec ou sans entrée)
        """
        if not file_data_uri and not text_input:
            logger.warning("Extraction de matériaux: fichier ou texte requis")
            return []

        if brand_type == BrandType.K_PLUS.value:
            brand_rule = f'You MUST ONLY match with products that have "{K_PLUS_MARKER}" in their name.'
        elif brand_type == BrandType.MISCELLANEOUS.value:
            brand_rule = f'You MUST ONLY match with products that DO NOT have "{K_PLUS_MARKER}" in their name.'
        else:
            brand_rule = 'Brand not specified: find the best possible match regardless of brand.'

        catalog = '\n'.join(
            f'- id: {p.get("id")}, name: "{p.get("name", "")}", unit: "{p.get("unit", "")}"'
            for p in existing_products
        ) or '(No existing products)'

        prompt = (
            "You are an expert assistant for a construction material supplier in Iran. Analyze the provided "
            "content, extract the list of materials and match each one against the existing products.\n"
            f"Brand preference: {brand_rule}\n"
            "When a match is found use the existing product id, name and unit and set isNew to false. "
            "Otherwise set isNew to true and use the extracted name as productId and name.\n"
            "The final response MUST be in PERSIAN.\n"
            f"Existing Products for Matching:\n{catalog}\n"
        )
        if text_input:
            prompt += f"Text content:\n---\n{text_input}\n---\n"
        else:
            prompt += "File content is attached.\n"
        prompt += ('Answer with JSON: {"materials": [{"isNew": boolean, "productId": string, "name": string, '
                   '"quantity": number, "unit": string}]}')

        def call():
            attached = None if text_input else MediaPart.from_data_uri(file_data_uri)
            data = self.provider.generate_json(prompt, attached)
            known_ids = {p.get('id') for p in existing_products}
            materials = []
            for item in data.get('materials') or []:
                name = _text(item.get('name'))
                quantity = item.get('quantity')
                if not name or not is_number(quantity):
                    continue
                product_id = _text(item.get('productId')) or name
                materials.append(ExtractedMaterial(
                    is_new=product_id not in known_ids,
                    product_id=product_id,
                    name=name,
                    quantity=quantity,
                    unit=_text(item.get('unit')),
                ))
            return materials

        return self._run('extract_materials', [], call)

    # ---------- Factures ----------

    def generate_invoice_description(self, products: List[dict]) -> str:
        """Description concise d'une facture à partir de ses lignes (name, quantity)"""
        lines = '\n'.join(f"- {p.get('quantity', 1)} x {p.get('name', '')}" for p in products)
        prompt = (
            "Generate a professional and concise description for the following invoice.\n"
            f"Invoice Items:\n{lines}\n"
            'Answer with JSON: {"description": string}'
        )

        def call():
            return _text(self.provider.generate_json(prompt).get('description'))

        return self._run('generate_invoice_description', '', call)

    def suggest_discounts(self, customer_id: str, products: List[dict], customer_purchase_history: str = '',
                          current_promotions: Optional[List[dict]] = None) -> List[DiscountSuggestion]:
        """Remises suggérées pour une facture (liste vide si aucune)"""
        product_lines = '\n'.join(
            f"- Product ID: {p.get('productId')}, Quantity: {p.get('quantity')}, Price: {p.get('price')}"
            for p in products
        )
        promotion_lines = '\n'.join(
            f"- Promotion ID: {p.get('promotionId')}, Description: {p.get('description')}, "
            f"Discount Percentage: {p.get('discountPercentage')}"
            for p in (current_promotions or [])
        ) or 'No current promotions.'
        prompt = (
            "You are an expert sales strategist. Given the following information about a customer, their "
            "purchase, and current promotions, suggest the optimal discounts to apply to the invoice to "
            "maximize sales and reward loyal customers. Provide a reason for each discount. If there are no "
            "discounts to apply, return an empty list.\n"
            f"Customer ID: {customer_id}\nCustomer Purchase History: {customer_purchase_history}\n"
            f"Products:\n{product_lines}\nCurrent Promotions:\n{promotion_lines}\n"
            'Answer with JSON: {"suggestedDiscounts": [{"productId": string|null, "promotionId": string|null, '
            '"discountPercentage": number, "reason": string}]}'
        )

        def call():
            data = self.provider.generate_json(prompt)
            suggestions = []
            for item in data.get('suggestedDiscounts') or []:
                percentage = item.get('discountPercentage')
                if not is_number(percentage) or not 0 <= percentage <= 100:
                    continue
                suggestions.append(DiscountSuggestion(
                    discount_percentage=percentage,
                    reason=_text(item.get('reason')),
                    product_id=item.get('productId') or None,
                    promotion_id=item.get('promotionId') or None,
                ))
            return suggestions

        return self._run('suggest_discounts', [], call)
