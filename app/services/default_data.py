"""
Données de démarrage d'un nouvel utilisateur
============================================

Un magasin, une catégorie et deux sous-catégories, trois produits, un client,
six unités, aucune facture. Les identifiants sont générés à chaque appel et toutes
les références (storeId, parentId, subCategoryId) sont résolues dans le jeu.
"""

from typing import Callable, Dict, List

from app.models import Store, Category, Product, Customer, Unit, CollectionName
from app.services.ids import generate_id

UNIT_NAMES = ('عدد', 'متر طول', 'متر مربع', 'بسته', 'شاخه', 'کارتن')


def build_default_data(id_generator: Callable[[str], str] = generate_id) -> Dict[str, List[dict]]:
    """
    Construit le jeu de démarrage

    Args:
        id_generator: Générateur d'identifiants (nom de collection -> id)

    Returns:
        dict: Les six collections, format des sauvegardes
    """
    store = Store(
        id=id_generator(CollectionName.STORES.value),
        name='دکوربند',
        address='میدان پونک، برج تجاری، واحد ۱۱۰',
        phone='۰۲۱-۴۴۴۴۸۸۸۸',
        logo_url='https://picsum.photos/seed/kanaf/110/110',
        bank_account_holder='اسماعیل بهاری',
        bank_name='سامان',
        bank_account_number='123-456-789',
        bank_iban='IR690560081680002151791001',
        bank_card_number='6219861051578325',
    )

    root = Category(id=id_generator(CollectionName.CATEGORIES.value), name='کناف', store_id=store.id)
    profiles = Category(id=id_generator(CollectionName.CATEGORIES.value), name='پروفیل‌های گالوانیزه',
                        store_id=store.id, parent_id=root.id)
    panels = Category(id=id_generator(CollectionName.CATEGORIES.value), name='پانل‌های گچی',
                      store_id=store.id, parent_id=root.id)

    products = [
        Product(name='سازه F47', description='پروفیل گالوانیزه برای زیرسازی سقف کاذب', price=100000,
                image_url='https://picsum.photos/seed/f47/400/300', sub_category_id=profiles.id, unit='شاخه'),
        Product(name='سازه U36', description='پروفیل گالوانیزه رانر برای دیوار و سقف', price=80000,
                image_url='https://picsum.photos/seed/u36/400/300', sub_category_id=profiles.id, unit='شاخه'),
        Product(name='پانل گچی (RG)', description='پانل گچی معمولی برای استفاده عمومی', price=150000,
                image_url='https://picsum.photos/seed/rg-panel/400/300', sub_category_id=panels.id, unit='عدد'),
    ]
    for product in products:
        product.id = id_generator(CollectionName.PRODUCTS.value)
        product.store_id = store.id

    customer = Customer(
        id=id_generator(CollectionName.CUSTOMERS.value),
        name='مشتری نمونه',
        email='customer@example.com',
        phone='09120000000',
        address='تهران، خیابان آزادی',
        purchase_history='مشتری جدید',
    )

    units = [Unit(id=id_generator(CollectionName.UNITS.value), name=name, default_quantity=1)
             for name in UNIT_NAMES]

    return {
        CollectionName.STORES.value: [store.to_dict()],
        CollectionName.CATEGORIES.value: [root.to_dict(), profiles.to_dict(), panels.to_dict()],
        CollectionName.PRODUCTS.value: [p.to_dict() for p in products],
        CollectionName.CUSTOMERS.value: [customer.to_dict()],
        CollectionName.INVOICES.value: [],
        CollectionName.UNITS.value: [u.to_dict() for u in units],
    }
