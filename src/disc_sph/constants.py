"""
Physical constants and unit conversions.

Code units for generation are AU, solar masses and seconds (velocities are
reported in km/s). Analysis quantities (density, column density, opacity,
energy) are CGS.
"""

# Length
AU_TO_M = 1.495978707e11
AU_TO_CM = AU_TO_M * 100.0
AU_TO_KM = AU_TO_M / 1000.0

# Mass
MSUN_TO_KG = 1.98847e30
MSUN_TO_G = MSUN_TO_KG * 1000.0
MSUN_TO_MJUP = 1047.57

# Velocity
KMPERS_TO_MPERS = 1000.0

# Gravitational constant in SI and in AU^3 Msun^-1 s^-2
G_SI = 6.67430e-11
G_AU = G_SI * MSUN_TO_KG / AU_TO_M**3

# Thermal constants (SI unless noted)
K_B = 1.380649e-23
M_P = 1.67262192e-27
MU = 2.35  # mean molecular weight of molecular cloud gas
K_B_CGS = 1.380649e-16
M_P_CGS = 1.67262192e-24
SB = 5.670374e-5  # Stefan-Boltzmann [erg cm^-2 s^-1 K^-4]

# Density conversions
MSOLPERAU3_TO_GPERCM3 = MSUN_TO_G / AU_TO_CM**3
MSOLPERAU2_TO_GPERCM2 = MSUN_TO_G / AU_TO_CM**2

# Enclosed gas mass fractions used for outer disc radii
ROUT_PERCS = (0.90, 0.95, 0.99)

# Background temperature the gas radiates against [K]
T_BACKGROUND = 10.0
