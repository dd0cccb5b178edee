"""领域层模型。

包含：
- models: Part / Message / Citation / Document / RuleSet 及 Provider 请求模型。
- session: 显式传递的会话上下文。
- rules: 规则文件导入导出。
- exceptions: 业务异常类型定义。
"""
