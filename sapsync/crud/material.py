# sapsync/crud/material.py
from sqlalchemy.orm import Session
from typing import Optional
from sapsync.models.material import Material

def get_material_by_number(db: Session, sap_material_number: str) -> Optional[Material]:
    """Получить материал по номеру SAP (MATNR)"""
    return db.query(Material).filter(Material.sap_material_number == sap_material_number).first()

def save_material(db: Session, material: Material) -> Material:
    db.add(material)
    db.commit()
    db.refresh(material)
    return material
