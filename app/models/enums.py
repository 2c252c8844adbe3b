"""
Enums - Types énumérés pour les modèles
=======================================

Centralise les noms de collections et les statuts pour éviter les "magic strings"
et garantir la cohérence des données.
"""

import enum


class CollectionName(enum.Enum):
    """Les six collections d'un utilisateur (ordre des sauvegardes)"""
    STORES = 'stores'
    CATEGORIES = 'categories'
    PRODUCTS = 'products'
    CUSTOMERS = 'customers'
    INVOICES = 'invoices'
    UNITS = 'units'

    @classmethod
    def values(cls) -> list:
        return [c.value for c in cls]

    @classmethod
    def is_valid(cls, name: str) -> bool:
        return name in cls.values()


COLLECTIONS = tuple(CollectionName.values())


class InvoiceStatus(enum.Enum):
    """Statuts possibles d'une facture"""
    PAID = 'Paid'            # Payée
    PENDING = 'Pending'      # En attente de paiement
    OVERDUE = 'Overdue'      # Échéance dépassée

    @classmethod
    def get_label(cls, status: str, lang: str = 'fa') -> str:
        """Retourne le label traduit d'un statut"""
        labels = {
            'fa': {
                'Paid': 'پرداخت شده',
                'Pending': 'در انتظار',
                'Overdue': 'سررسید گذشته',
            },
            'en': {
                'Paid': 'Paid',
                'Pending': 'Pending',
                'Overdue': 'Overdue',
            }
        }
        return labels.get(lang, labels['fa']).get(status, status)

    @classmethod
    def values(cls) -> list:
        return [s.value for s in cls]


class WriteKind(enum.Enum):
    """Nature d'une écriture envoyée au stockage distant"""
    SET = 'set'          # Écrasement complet du document
    MERGE = 'merge'      # Fusion des champs fournis (crée le document si absent)
    DELETE = 'delete'    # Suppression


class BackupShape(enum.Enum):
    """Forme détectée d'une sauvegarde importée"""
    NORMALIZED = 'normalized'    # Magasins dans leur propre collection
    LEGACY = 'legacy'            # Infos magasin portées par des catégories


class BrandType(enum.Enum):
    """Préférence de marque pour l'extraction de matériaux"""
    K_PLUS = 'k-plus'                  # Uniquement les produits "کی پلاس"
    MISCELLANEOUS = 'miscellaneous'    # Tout sauf "کی پلاس"

    @classmethod
    def values(cls) -> list:
        return [b.value for b in cls]
