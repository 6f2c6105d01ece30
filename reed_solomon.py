"""Galois Field GF(2^8) and Reed-Solomon error correction as used by QR codes.

Codewords are polynomials with the first byte as the highest-degree
coefficient. The generator has roots a^0 .. a^(nsym-1) over the field built
from the primitive polynomial x^8 + x^4 + x^3 + x^2 + 1 (0x11D).
"""

PRIMITIVE = 0x11D


class ReedSolomonError(ValueError):
    pass


class GF:
    """Galois Field GF(2^8) for Reed-Solomon."""
    def __init__(self, primitive=PRIMITIVE):
        self.exp, self.log = [0]*512, [0]*256
        x = 1
        for i in range(255):
            self.exp[i], self.log[x] = x, i
            x = (x << 1) ^ primitive if x & 0x80 else x << 1
        for i in range(255, 512):
            self.exp[i] = self.exp[i - 255]

    def mul(self, a, b):
        return 0 if a == 0 or b == 0 else self.exp[self.log[a] + self.log[b]]

    def div(self, a, b):
        if b == 0:
            raise ZeroDivisionError("GF division by zero")
        return 0 if a == 0 else self.exp[(self.log[a] - self.log[b]) % 255]

    def inv(self, a):
        return self.exp[255 - self.log[a]]

    def poly_mul(self, p1, p2):
        r = [0] * (len(p1) + len(p2) - 1)
        for i, c1 in enumerate(p1):
            for j, c2 in enumerate(p2):
                r[i + j] ^= self.mul(c1, c2)
        return r

    def poly_eval(self, p, x):
        """Horner evaluation, highest-degree coefficient first."""
        r = 0
        for c in p:
            r = self.mul(r, x) ^ c
        return r


GF256 = GF()


class ReedSolomon:
    """Corrects up to nsym // 2 byte errors in one block."""
    def __init__(self, nsym, gf=GF256):
        self.nsym, self.gf = nsym, gf

    def generator(self):
        g = [1]
        for i in range(self.nsym):
            g = self.gf.poly_mul(g, [1, self.gf.exp[i]])
        return g

    def encode(self, data):
        """Append nsym EC bytes to data (systematic encoding)."""
        gen = self.generator()
        rem = list(data) + [0] * self.nsym
        for i in range(len(data)):
            coef = rem[i]
            if coef:
                for j in range(1, len(gen)):
                    rem[i + j] ^= self.gf.mul(gen[j], coef)
        return list(data) + rem[len(data):]

    def syndromes(self, msg):
        return [self.gf.poly_eval(msg, self.gf.exp[i]) for i in range(self.nsym)]

    def _berlekamp_massey(self, synd):
        """Error locator polynomial, constant term first, trailing zeros trimmed."""
        C, B = [1], [1]
        L, m, b = 0, 1, 1
        for n in range(len(synd)):
            d = synd[n]
            for i in range(1, L + 1):
                if i < len(C):
                    d ^= self.gf.mul(C[i], synd[n - i])
            if d == 0:
                m += 1
                continue
            coef = self.gf.div(d, b)
            T = list(C)
            C = C + [0] * max(0, len(B) + m - len(C))
            for i, bi in enumerate(B):
                C[i + m] ^= self.gf.mul(coef, bi)
            if 2 * L <= n:
                L, B, b, m = n + 1 - L, T, d, 1
            else:
                m += 1
        while len(C) > 1 and C[-1] == 0:
            C.pop()
        return C, L

    def _find_errors(self, err_loc, n):
        # err_loc is constant-first, so evaluating it highest-first gives x^L * err_loc(1/x);
        # its roots a^i are the error locators themselves
        return [n - 1 - i for i in range(n) if self.gf.poly_eval(err_loc, self.gf.exp[i]) == 0]

    def _correct(self, msg, synd, pos):
        # Error locator L(x) = prod(1 + X_j x), highest degree first
        err_loc = [1]
        for p in pos:
            err_loc = self.gf.poly_mul(err_loc, [self.gf.exp[len(msg) - 1 - p], 1])
        omega = self.gf.poly_mul(synd[::-1], err_loc)[-self.nsym:]
        # Formal derivative in GF(2^8): d/dx(a*x^k) = a*x^{k-1} if k odd, 0 if k even
        n = len(err_loc) - 1
        deriv = [err_loc[i] if (n - i) % 2 == 1 else 0 for i in range(n)] or [0]
        msg = list(msg)
        for p in pos:
            Xi = self.gf.exp[len(msg) - 1 - p]
            Xi_inv = self.gf.inv(Xi)
            d = self.gf.poly_eval(deriv, Xi_inv)
            if d == 0:
                raise ReedSolomonError("Degenerate error locator")
            msg[p] ^= self.gf.mul(Xi, self.gf.div(self.gf.poly_eval(omega, Xi_inv), d))
        return msg

    def decode(self, msg):
        """Return (corrected data bytes, number of corrected bytes)."""
        if len(msg) > 255:
            raise ReedSolomonError(f"Block of {len(msg)} bytes is too long for GF(256)")
        synd = self.syndromes(msg)
        if max(synd) == 0:
            return list(msg[:-self.nsym]), 0

        err_loc, count = self._berlekamp_massey(synd)
        if count > self.nsym // 2 or len(err_loc) - 1 != count:
            raise ReedSolomonError(f"Too many errors ({count} > {self.nsym // 2})")
        pos = self._find_errors(err_loc, len(msg))
        if len(pos) != count:
            raise ReedSolomonError("Cannot locate errors")

        corrected = self._correct(msg, synd, pos)
        if max(self.syndromes(corrected)) != 0:
            raise ReedSolomonError("Correction failed")
        return corrected[:-self.nsym], count
