from balance.kernel.kernel import KernelConfig, TaskKernel

__all__ = ["KernelConfig", "TaskKernel"]
