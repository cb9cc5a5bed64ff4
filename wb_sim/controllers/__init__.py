# wb_sim/controllers/__init__.py
