"""
Modèle UserDocument - Stockage distant des collections utilisateur
Équivalent relationnel du chemin users/{uid}/{collection}/{docId}
"""

from app import db
from datetime import datetime


class UserDocument(db.Model):
    """
    Un document d'une collection d'un utilisateur
    Le contenu est stocké en JSON sans la clé 'id' (portée par doc_id)
    """
    __tablename__ = 'user_documents'

    # Auto-incrément: conserve l'ordre d'insertion des documents
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    collection = db.Column(db.String(32), nullable=False)
    doc_id = db.Column(db.String(128), nullable=False)

    data = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'collection', 'doc_id', name='uq_user_document'),
        db.Index('ix_user_documents_user_collection', 'user_id', 'collection'),
    )

    def to_dict(self):
        return {'id': self.doc_id, **(self.data or {})}

    def __repr__(self):
        return f'<UserDocument {self.user_id}/{self.collection}/{self.doc_id}>'
