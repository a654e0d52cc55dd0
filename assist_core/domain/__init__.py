"""领域层模型与协议。

包含：
- models: ChatTurn / DispatchRequest / QueuedTask / ActionDirective 等数据模型。
- events: 发往前端的 OutboundEvent 及 Notifier 通知协议。
- credentials: CredentialStore 凭据存储协议。
- exceptions: 业务异常类型定义。
"""
