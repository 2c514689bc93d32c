# sapsync/crud/customer.py
from sqlalchemy.orm import Session
from typing import Optional
from sapsync.models.customer import Customer

def get_customer_by_sap_id(db: Session, sap_customer_id: str, sales_org: str) -> Optional[Customer]:
    """Получить клиента по номеру SAP и организации сбыта"""
    return db.query(Customer).filter(
        Customer.sap_customer_id == sap_customer_id,
        Customer.sales_org == sales_org,
    ).first()

def save_customer(db: Session, customer: Customer) -> Customer:
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer
