from statsgate.datasource.base import BaseDataSource

__all__ = ["BaseDataSource"]
