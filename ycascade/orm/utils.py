"""ORM 工具函数

提供命名转换工具。
"""
import re


def to_snake_case(name: str) -> str:
    """驼峰命名转下划线命名（支持连续大写缩写如 E2E、API、URL）

    Examples:
        >>> to_snake_case("OrderLine")
        'order_line'
        >>> to_snake_case("APIClient")
        'api_client'
    """
    # E2EOrder → E2E_Order, APIClient → API_Client
    result = re.sub(r'([A-Z\d]+)([A-Z][a-z])', r'\1_\2', name)
    # orderLine → order_Line
    result = re.sub(r'([a-z])([A-Z])', r'\1_\2', result)
    return result.lower()
