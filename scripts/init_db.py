"""初始化数据库"""
import sys
import os

# 添加项目根目录到路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import DatabaseManager
from config.business_config import BusinessConfig, business_config
from config.logging_config import setup_logging
from loguru import logger


def init_database(database_url=None, config: BusinessConfig = business_config) -> int:
    """创建所有表并写入种子数据（租户、服务目录、商品、员工）

    可以重复执行，已存在的数据不会重复创建。

    Returns:
        种子租户的ID
    """
    logger.info("Initializing database...")

    db = DatabaseManager(database_url)
    try:
        logger.info("Creating tables...")
        db.create_tables()

        logger.info("Inserting seed data...")
        tenant_id = db.seed_catalog(config)
        for service in db.get_service_catalog(tenant_id):
            logger.info(f"Service ready: {service['name']} ({service['duration']} min)")
        for staff in db.get_staff_list(tenant_id):
            logger.info(f"Collaborator ready: {staff['name']} ({staff['role']})")
    finally:
        db.close()

    logger.info("Database initialization completed!")
    return tenant_id


if __name__ == "__main__":
    setup_logging()
    init_database()
