"""
Backend-сервис: HTTP API и вебхуки платёжного провайдера.
"""
