# wb_sim/utils/__init__.py
