"""
HTTP 接口

调用者身份来自 X-User-Id（由上游认证服务注入），门户口令来自 X-Portal-Key。
"""
