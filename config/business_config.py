"""
业务配置接口 - 支持可替换的业务配置

新门店可以实现自己的业务配置，替换默认配置。
scripts/init_db.py 会读取这里的数据初始化租户与服务目录。
"""
from abc import ABC, abstractmethod
from typing import List, Dict, Any


class BusinessConfig(ABC):
    """业务配置抽象基类"""

    @abstractmethod
    def get_tenant(self) -> Dict[str, str]:
        """获取默认租户（slug 与名称）"""
        pass

    @abstractmethod
    def get_services(self) -> List[Dict[str, Any]]:
        """获取服务目录（名称、时长/分钟、价格）"""
        pass

    @abstractmethod
    def get_products(self) -> List[Dict[str, Any]]:
        """获取商品目录（名称、价格）"""
        pass

    @abstractmethod
    def get_collaborators(self) -> List[Dict[str, Any]]:
        """获取初始员工（名称、角色、提成率）"""
        pass


class SalonConfig(BusinessConfig):
    """美发沙龙业务配置"""

    def get_tenant(self) -> Dict[str, str]:
        return {"slug": "salao-central", "name": "Salão Central"}

    def get_services(self) -> List[Dict[str, Any]]:
        return [
            {"name": "Corte Feminino", "duration": 45, "price": 80.0},
            {"name": "Corte Masculino", "duration": 30, "price": 50.0},
            {"name": "Escova", "duration": 30, "price": 45.0},
            {"name": "Coloração", "duration": 90, "price": 180.0},
            {"name": "Hidratação", "duration": 40, "price": 70.0},
            {"name": "Manicure", "duration": 30, "price": 35.0},
        ]

    def get_products(self) -> List[Dict[str, Any]]:
        return [
            {"name": "Shampoo", "price": 35.0},
            {"name": "Condicionador", "price": 38.0},
            {"name": "Máscara Capilar", "price": 60.0},
        ]

    def get_collaborators(self) -> List[Dict[str, Any]]:
        return [
            {"name": "Ana", "role": "professional", "commission_rate": 0.4},
            {"name": "Bruno", "role": "professional", "commission_rate": 0.35},
            {"name": "Carla", "role": "receptionist", "commission_rate": 0},
        ]


# 全局业务配置实例（可以在 app.py 中替换）
business_config: BusinessConfig = SalonConfig()
