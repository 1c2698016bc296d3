"""taskcontrol Core -- 任务生命周期与分配引擎"""
