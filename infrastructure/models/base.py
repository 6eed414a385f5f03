"""
数据库模型基类与通用列类型（SQLAlchemy 2.0 风格）
"""
from sqlalchemy import Numeric
from sqlalchemy.orm import DeclarativeBase


# 金额：15 位精度、两位小数；费率：百分比，两位小数
Money = Numeric(precision=15, scale=2)
Rate = Numeric(precision=5, scale=2)


class Base(DeclarativeBase):
    pass


# 元数据对象用于数据库迁移
metadata = Base.metadata
