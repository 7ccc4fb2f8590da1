"""
错误类型和异常层次结构

定义运输流程状态机中使用的所有自定义异常类型。

分类:
- 加载期错误 (LoadError): 在 instantiate_process 中批量收集并返回给调用者
- 参数绑定错误 (ParameterBindError): 默认仅记录日志，参数保持默认值
- 运行期路由错误 (RoutingError): 从 tick() 抛出，流程保持最后的有效状态
"""

from typing import Any, Dict, List, Optional


class TPMError(Exception):
    """运输流程状态机的基础异常类"""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """返回可序列化的错误描述"""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "context": dict(self.context),
        }


# 加载期错误


class LoadError(TPMError):
    """加载错误：流程描述在结构上无效"""

    pass


class UnknownStepTypeError(LoadError, KeyError):
    """未知步骤类型：步骤类型名未在注册表中注册"""

    def __init__(
        self,
        type_name: str,
        step_id: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(f"Unknown step type '{type_name}'", context)
        self.type_name = type_name
        self.step_id = step_id
        self.context.setdefault("type_name", type_name)
        if step_id is not None:
            self.context.setdefault("step_id", step_id)

    def __str__(self) -> str:
        # KeyError 默认会给消息加引号
        return self.message


class StepConstructionError(LoadError):
    """步骤构造失败：构造句柄抛出异常或返回了非步骤对象"""

    pass


class DuplicateStepIdError(LoadError):
    """重复的步骤ID：同一流程中两个步骤使用相同ID"""

    pass


class DanglingEdgeReferenceError(LoadError):
    """悬空边：边的源或目标步骤ID无法解析"""

    pass


class UnknownExitReferenceError(LoadError):
    """未知出口：出口名称未在源步骤的定义中声明"""

    pass


class InvalidInitialStepError(LoadError):
    """初始步骤无效：初始步骤ID缺失或无法解析"""

    pass


class ProcessDataError(LoadError):
    """流程描述数据错误：文件读取、解析或模式校验失败"""

    pass


class ProcessInstantiationError(LoadError):
    """流程实例化失败：携带本次加载收集到的全部错误"""

    def __init__(
        self,
        errors: List[TPMError],
        process_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        summary = "; ".join(error.message for error in errors)
        super().__init__(
            f"Process '{process_name or '<unnamed>'}' has {len(errors)} load error(s): {summary}",
            context,
        )
        self.errors = list(errors)
        self.process_name = process_name


# 参数绑定错误


class ParameterBindError(TPMError):
    """参数绑定错误：参数值无法绑定到步骤实例"""

    def __init__(
        self,
        message: str,
        parameter_name: Optional[str] = None,
        step_id: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.parameter_name = parameter_name
        self.step_id = step_id
        if parameter_name:
            self.context.setdefault("parameter", parameter_name)
        if step_id is not None:
            self.context.setdefault("step_id", step_id)


class MissingOrderParameterError(TPMError, KeyError):
    """缺少订单参数：步骤所需的订单推断参数未由流程提供"""

    def __str__(self) -> str:
        return self.message


# 运行期错误


class RoutingError(TPMError):
    """路由错误：无法确定下一个步骤"""

    pass


class AmbiguousRoutingError(RoutingError):
    """路由歧义：同一 (源步骤, 出口) 存在多条边"""

    pass


class StepExecutionError(TPMError):
    """步骤执行错误：步骤的生命周期方法抛出异常"""

    pass
