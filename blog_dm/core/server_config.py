# 服务器对外地址配置
# 部署时通过环境变量修改

import os

# 开发环境使用 localhost，生产环境改为域名或服务器IP
SERVER_HOST = os.getenv("SERVER_HOST", "localhost")

# 服务器端口
SERVER_PORT = int(os.getenv("SERVER_PORT", "8000"))

# http / https
SERVER_SCHEME = os.getenv("SERVER_SCHEME", "http")

# 获取完整的服务器地址
def get_server_url() -> str:
    """返回完整的服务器URL"""
    return f"{SERVER_SCHEME}://{SERVER_HOST}:{SERVER_PORT}"

# 获取静态文件访问地址
def get_static_url(path: str) -> str:
    """
    返回静态文件的完整URL
    :param path: 相对路径，例如 '/static/upload/xxx.png'
    已经是完整地址的原样返回
    """
    if not path or path.startswith("http"):
        return path
    return f"{get_server_url()}{path}"
