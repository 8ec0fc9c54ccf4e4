"""
Database Models - Star Schema Design

SQL rendition of the curated zone, kept column-for-column identical to the
parquet tables so the publisher can insert frames as they are:

Fact Tables:
- FactSales: Sales order lines resolved to dimension keys

Dimension Tables:
- DimCustomer: Customer attributes, CRM enriched with ERP
- DimProduct: Active products with their category
"""

from datetime import date
from typing import Optional

from sqlalchemy import Date, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


class DimCustomer(Base):
    """
    Customer Dimension Table

    One row per CRM customer id; surrogate keys are reassigned on every
    full refresh.
    """
    __tablename__ = "dim_customers"

    customer_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    customer_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    customer_number: Mapped[Optional[str]] = mapped_column(String(50))

    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))

    # Demographics
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    marital_status: Mapped[str] = mapped_column(String(20), nullable=False)
    gender: Mapped[str] = mapped_column(String(20), nullable=False)
    birth_date: Mapped[Optional[date]] = mapped_column(Date)

    create_date: Mapped[Optional[date]] = mapped_column(Date)

    __table_args__ = (
        Index("ix_dim_customers_number", "customer_number"),
        Index("ix_dim_customers_country", "country"),
    )


class DimProduct(Base):
    """Product Dimension Table (active versions only)"""
    __tablename__ = "dim_products"

    product_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    product_id: Mapped[Optional[int]] = mapped_column(Integer)
    product_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    product_name: Mapped[Optional[str]] = mapped_column(String(200))

    # Categories
    category_id: Mapped[Optional[str]] = mapped_column(String(50))
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    subcategory: Mapped[str] = mapped_column(String(100), nullable=False)
    maintenance: Mapped[str] = mapped_column(String(20), nullable=False)

    cost: Mapped[float] = mapped_column(Float, nullable=False)
    product_line: Mapped[str] = mapped_column(String(50), nullable=False)
    start_date: Mapped[Optional[date]] = mapped_column(Date)

    __table_args__ = (
        Index("ix_dim_products_category", "category_id"),
        Index("ix_dim_products_line", "product_line"),
    )


class FactSales(Base):
    """
    Sales Fact Table

    Grain: one row per order line (order number, product number).
    """
    __tablename__ = "fact_sales"

    order_number: Mapped[str] = mapped_column(String(50), primary_key=True)
    product_number: Mapped[str] = mapped_column(String(50), primary_key=True)

    product_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_products.product_key"), nullable=False
    )
    customer_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_customers.customer_key"), nullable=False
    )
    customer_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Dates
    order_date: Mapped[Optional[date]] = mapped_column(Date)
    ship_date: Mapped[Optional[date]] = mapped_column(Date)
    due_date: Mapped[Optional[date]] = mapped_column(Date)

    # Measures
    sales_amount: Mapped[Optional[float]] = mapped_column(Float)
    quantity: Mapped[Optional[int]] = mapped_column(Integer)
    price: Mapped[Optional[float]] = mapped_column(Float)

    __table_args__ = (
        Index("ix_fact_sales_order_date", "order_date"),
        Index("ix_fact_sales_customer", "customer_key"),
        Index("ix_fact_sales_product", "product_key"),
    )


