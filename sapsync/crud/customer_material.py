# sapsync/crud/customer_material.py
from sqlalchemy.orm import Session
from typing import Optional
from sapsync.models.customer import Customer
from sapsync.models.material import Material
from sapsync.models.customer_material import CustomerMaterial

def get_customer_material(
    db: Session,
    customer: Customer,
    material: Material,
    sales_org: Optional[str] = None
) -> Optional[CustomerMaterial]:
    """Получить связь клиент-материал"""
    query = db.query(CustomerMaterial).filter(
        CustomerMaterial.customer_id == customer.id,
        CustomerMaterial.material_id == material.id,
    )

    if sales_org is not None:
        query = query.filter(CustomerMaterial.sales_org == sales_org)

    return query.first()

def save_customer_material(db: Session, customer_material: CustomerMaterial) -> CustomerMaterial:
    db.add(customer_material)
    db.commit()
    db.refresh(customer_material)
    return customer_material
