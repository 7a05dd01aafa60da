"""通用的纯函数工具。"""
