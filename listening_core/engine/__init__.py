"""核心引擎：取消控制、上下文组装、流式聚合、引用解码与规则提炼。"""
