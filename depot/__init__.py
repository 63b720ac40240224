"""depot - 包解析与安装核心"""

__version__ = "0.1.0"
