from sqlalchemy.orm import declarative_base

# 所有模型的声明基类
Base = declarative_base()
