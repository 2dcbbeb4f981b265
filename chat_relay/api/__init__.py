"""
API ルーター群

chat_relay の REST API エンドポイントを定義するルーターモジュール群。

含まれるルーター:
- chat: /chat（AI応答の生成と転送）
- users: /register-user（ユーザー登録）
- messages: /get-messages（保存済み会話の取得）
"""
